"""
環境変数検証 - レシート突合せツール用

freee取引のライブ取得とVision OCRはそれぞれ別の環境変数を必要とする。
実行モードに応じて必要なグループだけを検証する。
"""

import os
import re
from datetime import datetime
from typing import Dict, Iterable, List, Tuple


class EnvironmentValidator:
    """環境変数の存在とフォーマットを検証するクラス"""

    # 用途ごとの必須環境変数
    VAR_GROUPS = {
        "freee": {
            "FREEE_ACCESS_TOKEN": {
                "description": "freee OAuth Access Token",
                "pattern": r"^[A-Za-z0-9_\-\.]{20,}$",
            },
            "FREEE_COMPANY_ID": {
                "description": "freee Company ID",
                "pattern": r"^\d+$",
            },
        },
        "ocr": {
            "GOOGLE_VISION_API_KEY": {
                "description": "Google Vision API Key",
                "pattern": r"^[A-Za-z0-9_\-]{20,}$",
            },
        },
    }

    OPTIONAL_VARS = {
        "MATCHING_CONFIG": {
            "description": "マッチング設定YAMLのパス (既定: config/matching.yml)",
        },
    }

    def __init__(self):
        self.missing_vars: List[str] = []
        self.invalid_vars: List[str] = []

    def validate(self, groups: Iterable[str], verbose: bool = True) -> Dict:
        self.missing_vars = []
        self.invalid_vars = []
        details = {}

        for group in groups:
            for var_name, config in self.VAR_GROUPS[group].items():
                value = os.getenv(var_name)
                if not value:
                    self.missing_vars.append(var_name)
                    details[var_name] = "missing"
                    if verbose:
                        print(f"  ❌ {var_name}: 未設定 ({config['description']})")
                elif not re.match(config["pattern"], value):
                    self.invalid_vars.append(var_name)
                    details[var_name] = "invalid"
                    if verbose:
                        print(f"  ⚠️  {var_name}: 設定済み (⚠️フォーマット検証失敗)")
                else:
                    details[var_name] = "ok"
                    if verbose:
                        print(f"  ✅ {var_name}: 設定済み・検証OK")

        for var_name in self.OPTIONAL_VARS:
            details[var_name] = "ok" if os.getenv(var_name) else "optional_missing"

        return {
            "timestamp": datetime.now().isoformat(),
            "status": "pass" if not self.missing_vars and not self.invalid_vars else "fail",
            "missing_required": list(self.missing_vars),
            "invalid_format": list(self.invalid_vars),
            "details": details,
        }

    def check_requirements(self, groups: Iterable[str]) -> bool:
        """必須変数の欠落時は EnvironmentError（フォーマット不正は警告のみ）"""
        results = self.validate(groups, verbose=False)
        if results["missing_required"]:
            raise EnvironmentError(
                f"必須環境変数が未設定です: {', '.join(results['missing_required'])}"
            )
        for var_name in results["invalid_format"]:
            print(f"⚠️ {var_name} のフォーマットが想定と異なります")
        return True


def validate_environment_quick(groups: Iterable[str] = ("freee",)) -> Tuple[bool, List[str]]:
    validator = EnvironmentValidator()
    results = validator.validate(groups, verbose=False)
    return not results["missing_required"], results["missing_required"]

"""Risk classification for tool approval requests."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml

LOGGER = logging.getLogger(__name__)

RISK_ORDER = {"low": 0, "medium": 1, "high": 2}

# Substring match on the lower-cased tool name, exact match on provider id
HIGH_RISK_TOOLS = ("file_write", "system_command", "delete_file", "exec")
HIGH_RISK_PROVIDERS = ("system", "admin")
MEDIUM_RISK_TOOLS = ("web_search", "api_call", "database_query")
MEDIUM_RISK_PROVIDERS = ("web", "api")


@dataclass
class RiskAssessment:
    """Risk classification result."""

    risk_level: str = "low"  # low, medium, high
    reason: str = ""


def risk_at_most(level: str, ceiling: Optional[str]) -> bool:
    """Whether ``level`` does not exceed ``ceiling`` (None means nothing qualifies)."""
    if ceiling is None:
        return False
    return RISK_ORDER.get(level, 2) <= RISK_ORDER.get(ceiling, -1)


class RiskAssessor:
    """Tool call risk classifier.

    Three layers, highest priority first:
    1. Custom per-tool checkers (code, overrides everything)
    2. YAML rules: ``tools`` (level and argument patterns) and ``providers``
    3. Built-in table keyed on tool name and provider id

    Layers 2 and 3 are combined by taking the highest level found.
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Args:
            config_path: Optional YAML rules file
        """
        self.config_path = Path(config_path) if config_path else None
        self.rules = self._load_config() if self.config_path else {}
        self.custom_checkers: Dict[str, Callable[[str, Dict[str, Any]], RiskAssessment]] = {}

    def _load_config(self) -> dict:
        if not self.config_path or not self.config_path.exists():
            LOGGER.warning(f"Risk rules file not found: {self.config_path}")
            return {}

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            LOGGER.warning(f"Failed to load risk rules from {self.config_path}: {e}")
            return {}

    def register_checker(self, tool_name: str, checker: Callable[[str, Dict[str, Any]], RiskAssessment]) -> None:
        """Register a custom checker receiving ``(provider_id, args)``."""
        self.custom_checkers[tool_name] = checker

    def assess(self, tool_name: str, provider_id: Optional[str], args: Optional[Dict[str, Any]] = None) -> RiskAssessment:
        """Classify a tool call.

        Args:
            tool_name: Tool name as exposed to the model
            provider_id: Capability provider serving the tool
            args: Call arguments

        Returns:
            RiskAssessment
        """
        args = args or {}
        if tool_name in self.custom_checkers:
            return self.custom_checkers[tool_name](provider_id or "", args)

        candidates = [
            self._check_builtin_rules(tool_name, provider_id),
            self._check_config_rules(tool_name, provider_id, args),
        ]
        best = candidates[0]
        for candidate in candidates[1:]:
            if RISK_ORDER[candidate.risk_level] > RISK_ORDER[best.risk_level]:
                best = candidate
        return best

    def _check_builtin_rules(self, tool_name: str, provider_id: Optional[str]) -> RiskAssessment:
        name = (tool_name or "").lower()

        if any(pattern in name for pattern in HIGH_RISK_TOOLS) or provider_id in HIGH_RISK_PROVIDERS:
            return RiskAssessment("high", f"{tool_name} can modify the system")

        if any(pattern in name for pattern in MEDIUM_RISK_TOOLS) or provider_id in MEDIUM_RISK_PROVIDERS:
            return RiskAssessment("medium", f"{tool_name} reaches external services")

        return RiskAssessment("low", "")

    def _check_config_rules(self, tool_name: str, provider_id: Optional[str], args: Dict[str, Any]) -> RiskAssessment:
        found = RiskAssessment("low", "")

        provider_level = (self.rules.get("providers") or {}).get(provider_id or "")
        if provider_level in RISK_ORDER:
            found = RiskAssessment(provider_level, f"provider {provider_id} is rated {provider_level}")

        tool_config = (self.rules.get("tools") or {}).get(tool_name)
        if not isinstance(tool_config, dict):
            return found

        level = tool_config.get("risk")
        if level in RISK_ORDER and RISK_ORDER[level] > RISK_ORDER[found.risk_level]:
            found = RiskAssessment(level, f"{tool_name} is rated {level}")

        args_str = " ".join(str(v) for v in args.values())
        for pattern_level, patterns in (tool_config.get("patterns") or {}).items():
            if pattern_level not in RISK_ORDER or RISK_ORDER[pattern_level] <= RISK_ORDER[found.risk_level]:
                continue
            for pattern in patterns or []:
                if re.search(pattern, args_str, re.IGNORECASE):
                    found = RiskAssessment(pattern_level, f"arguments match {pattern_level} pattern: {pattern}")
                    break

        return found

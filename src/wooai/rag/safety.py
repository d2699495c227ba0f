"""Pattern-based safety filter for shopper messages.

Rejects messages that look like code or SQL injection, attempts to override
the assistant's instructions, or active markup. Patterns are deliberately
narrow: ordinary shopping questions ("what are the system requirements?",
"can I return this?") must pass.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from wooai.errors import SafetyRejection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SafetyRule:
    category: str
    name: str
    pattern: re.Pattern[str]


def _rule(category: str, name: str, pattern: str) -> SafetyRule:
    return SafetyRule(category, name, re.compile(pattern, re.I | re.S))


DEFAULT_RULES: tuple[SafetyRule, ...] = (
    # code injection
    _rule("code_injection", "exec_call",
          r"\b(?:eval|exec|system|shell_exec|passthru|popen|proc_open)\s*\(\s*[\"'$`]"),
    _rule("code_injection", "dunder_import", r"__import__\s*\("),
    _rule("code_injection", "shell_import",
          r"\b(?:import|require|include)\s*\(?\s*[\"']?(?:os|sys|subprocess|child_process)\b"),
    _rule("code_injection", "sql_drop", r"\bDROP\s+TABLE\b"),
    _rule("code_injection", "sql_union", r"\bUNION\s+(?:ALL\s+)?SELECT\b"),
    # prompt injection
    _rule("prompt_injection", "ignore_instructions",
          r"\b(?:ignore|forget|disregard|override)\s+(?:all\s+|any\s+|the\s+|your\s+)?"
          r"(?:previous\s+|prior\s+|above\s+|earlier\s+)?(?:system\s+)?"
          r"(?:instructions?|prompts?|rules?|guidelines?)\b"),
    _rule("prompt_injection", "pretend_identity", r"\bpretend\s+(?:you\s+are|to\s+be|you're)\b"),
    _rule("prompt_injection", "act_as_role",
          r"\b(?:act|behave|roleplay|role-play)\s+as\s+(?:an?\s+)?"
          r"(?:hacker|malicious|evil|jailbroken|unrestricted|uncensored|"
          r"different\s+(?:ai|assistant|model|chatbot))\b"),
    _rule("prompt_injection", "not_bound",
          r"\byou\s+are\s+(?:no\s+longer|not)\s+(?:bound|constrained|limited)\s+by\b"),
    _rule("prompt_injection", "special_mode",
          r"\b(?:enable|activate|turn\s+on|enter)\s+(?:developer|debug|admin|god|unrestricted)\s+mode\b"),
    _rule("prompt_injection", "jailbreak", r"\bjailbr(?:eak|oken)\b|\bdo\s+anything\s+now\b"),
    _rule("prompt_injection", "bypass_safety",
          r"\b(?:bypass|disable|turn\s+off)\s+(?:your\s+|the\s+)?"
          r"(?:safety|content\s+policy|restrictions?|filters?)\b"),
    _rule("prompt_injection", "reveal_prompt",
          r"\b(?:reveal|show|print|repeat)\s+(?:me\s+)?(?:your\s+|the\s+)?"
          r"(?:system\s+prompt|hidden\s+instructions|initial\s+instructions)\b"),
    # markup
    _rule("markup", "script_tag", r"<\s*script\b"),
    _rule("markup", "iframe_tag", r"<\s*iframe\b"),
    _rule("markup", "javascript_uri", r"\bjavascript\s*:"),
    _rule("markup", "data_html_uri", r"\bdata\s*:\s*text/html"),
    _rule("markup", "inline_handler", r"<[^>]*\son[a-z]+\s*="),
)


class SafetyFilter:
    """Check messages against an ordered list of rules."""

    def __init__(self, rules: tuple[SafetyRule, ...] | None = None) -> None:
        self.rules = rules if rules is not None else DEFAULT_RULES

    def scan(self, message: str) -> SafetyRule | None:
        """Return the first rule *message* matches, or None."""
        for rule in self.rules:
            if rule.pattern.search(message):
                return rule
        return None

    def is_safe(self, message: str) -> bool:
        return self.scan(message) is None

    def check(self, message: str) -> None:
        """Raise SafetyRejection if *message* matches any rule."""
        rule = self.scan(message)
        if rule is not None:
            logger.warning("Message rejected by safety rule %s/%s", rule.category, rule.name)
            raise SafetyRejection(category=rule.category)

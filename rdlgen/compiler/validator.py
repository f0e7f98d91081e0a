"""
Sandbox validation for generated report expressions.

Checks an expression statically against a policy before it is embedded in a
report definition:
- No file, network, reflection, process or threading access
- No late-bound object creation or shell execution
- Namespace-qualified calls only into an allow-listed set of namespaces
- Function names drawn from the known report function library

Violations are reported, not raised. Callers whose policy is strict use
``validate_expression_or_raise``.
"""

import logging
import re
from dataclasses import dataclass, field

from rdlgen.core.errors import SandboxViolationError
from rdlgen.domain.enums import ValidationSeverity
from rdlgen.domain.models import ValidationMessage

logger = logging.getLogger(__name__)

PROHIBITED_PATTERN = "SANDBOX001"
UNKNOWN_FUNCTION = "SANDBOX002"
NAMESPACE_NOT_ALLOWED = "SANDBOX003"

DEFAULT_PROHIBITED_PATTERNS = (
    r"System\.IO\.",
    r"System\.Net\.",
    r"System\.Reflection\.",
    r"System\.Diagnostics\.",
    r"System\.Threading\.",
    r"System\.Security\.",
    r"\bProcess\.",
    r"\bFile\.",
    r"\bDirectory\.",
    r"\bAssembly\.",
    r"\bAppDomain\.",
    r"\bActivator\.",
    r"\bType\.GetType",
    r"\bInvoke\s*\(",
    r"\bCreateObject\s*\(",
    r"\bGetObject\s*\(",
    r"\bShell\s*\(",
    r"\bEnviron\s*\(",
)

DEFAULT_ALLOWED_NAMESPACES = (
    "System.Convert",
    "System.Math",
    "System.String",
    "System.DateTime",
    "System.TimeSpan",
    "Microsoft.VisualBasic.Strings",
    "Microsoft.VisualBasic.DateAndTime",
    "Microsoft.VisualBasic.Conversion",
    "Microsoft.VisualBasic.Financial",
    "Microsoft.VisualBasic.Information",
    "Microsoft.VisualBasic.Interaction",
)

DEFAULT_ALLOWED_FUNCTIONS = frozenset(
    name.upper()
    for name in (
        # Program flow
        "IIf", "If", "Switch", "Choose",
        # Inspection
        "IsNothing", "IsNumeric", "IsDate", "IsArray", "IsError",
        # Conversion
        "CBool", "CByte", "CChar", "CDate", "CDbl", "CDec", "CInt", "CLng",
        "CObj", "CShort", "CSng", "CStr", "Fix", "Int", "Hex", "Oct", "Str", "Val",
        # Text
        "Len", "Left", "Right", "Mid", "Trim", "LTrim", "RTrim", "UCase", "LCase",
        "InStr", "InStrRev", "Replace", "Split", "Join", "StrComp", "StrConv",
        "StrReverse", "Space", "Asc", "AscW", "Chr", "ChrW", "Format",
        "FormatCurrency", "FormatDateTime", "FormatNumber", "FormatPercent",
        "LSet", "RSet", "Filter",
        # Date and time
        "Now", "Today", "TimeOfDay", "Year", "Month", "Day", "Hour", "Minute",
        "Second", "Weekday", "WeekdayName", "MonthName", "DateAdd", "DateDiff",
        "DatePart", "DateSerial", "DateValue", "TimeSerial", "TimeValue",
        # Math
        "Abs", "Sign", "Round", "Sqrt", "Pow", "Floor", "Ceiling", "Log", "Log10",
        "Exp", "Sin", "Cos", "Tan", "Atan", "Rnd", "Truncate",
        # Financial
        "DDB", "FV", "IPmt", "IRR", "MIRR", "NPer", "NPV", "Pmt", "PPmt", "PV",
        "Rate", "SLN", "SYD",
        # Aggregates and scope
        "Sum", "Avg", "Count", "CountDistinct", "CountRows", "Max", "Min",
        "First", "Last", "Previous", "RunningValue", "RowNumber", "Aggregate",
        "StDev", "StDevP", "Var", "VarP", "Level", "InScope",
        # Lookup
        "Lookup", "LookupSet", "MultiLookup",
    )
)  # fmt: skip

# Operator keywords may be followed by "(" without being calls.
_OPERATOR_KEYWORDS = frozenset({"AND", "ANDALSO", "OR", "ORELSE", "NOT", "MOD", "XOR", "LIKE", "IS"})

_STRING_LITERAL = re.compile(r'"(?:[^"]|"")*"')
_BUILTIN_REFERENCE = re.compile(
    r"\b(?:Fields|Parameters|Globals|User|ReportItems|Variables|DataSets|DataSources)!\w+"
    r"(?:\.(?:Value|IsMissing|Label|Count|IsTotal))?",
    re.IGNORECASE,
)
_CODE_MEMBER = re.compile(r"\bCode\.\w+", re.IGNORECASE)
_FUNCTION_CALL = re.compile(r"(?<![.\w])([A-Za-z_]\w*)\s*\(")
_QUALIFIED_NAME = re.compile(r"(?<![.\w!])([A-Z]\w*(?:\.[A-Z]\w*)+)", re.IGNORECASE)


@dataclass(frozen=True)
class SandboxPolicy:
    """Rules applied by the sandbox validator."""

    prohibited_patterns: tuple[str, ...] = DEFAULT_PROHIBITED_PATTERNS
    allowed_namespaces: tuple[str, ...] = DEFAULT_ALLOWED_NAMESPACES
    allowed_functions: frozenset[str] = DEFAULT_ALLOWED_FUNCTIONS
    reject_unknown_functions: bool = False

    def with_extra_functions(self, *names: str) -> "SandboxPolicy":
        return SandboxPolicy(
            prohibited_patterns=self.prohibited_patterns,
            allowed_namespaces=self.allowed_namespaces,
            allowed_functions=self.allowed_functions | {n.upper() for n in names},
            reject_unknown_functions=self.reject_unknown_functions,
        )


@dataclass
class SandboxResult:
    ok: bool
    violations: list[str] = field(default_factory=list)
    messages: list[ValidationMessage] = field(default_factory=list)

    @property
    def warnings(self) -> list[ValidationMessage]:
        return [m for m in self.messages if m.severity == ValidationSeverity.WARNING]

    @property
    def errors(self) -> list[ValidationMessage]:
        return [m for m in self.messages if m.is_error]


def default_policy() -> SandboxPolicy:
    """Policy built from application settings."""
    from rdlgen.core.config import settings

    return SandboxPolicy(reject_unknown_functions=settings.sandbox_reject_unknown_functions)


def validate_expression(expression: str, policy: SandboxPolicy | None = None) -> SandboxResult:
    """
    Check an expression against the sandbox policy.

    Args:
        expression: Generated expression text
        policy: Rules to apply (defaults from settings when omitted)

    Returns:
        SandboxResult; ``ok`` is False when any error-severity message exists

    Example:
        >>> validate_expression('=System.IO.File.ReadAllText("x")').ok
        False
        >>> validate_expression("=Sum(Fields!Amount.Value)").ok
        True
    """
    policy = policy or default_policy()
    if not expression:
        return SandboxResult(ok=True)

    masked = _STRING_LITERAL.sub('""', expression)
    messages: list[ValidationMessage] = []
    violations: list[str] = []

    # Report references (Fields!File.Value) never count as code access.
    without_references = _BUILTIN_REFERENCE.sub("0", masked)
    _check_prohibited_patterns(without_references, policy, messages, violations)

    stripped = _CODE_MEMBER.sub("0", without_references)
    _check_functions(stripped, policy, messages, violations)
    _check_namespaces(stripped, policy, messages, violations)

    ok = not any(m.is_error for m in messages)
    if not ok:
        logger.warning(
            "Sandbox rejected expression: %s (rules: %s)", expression, ", ".join(violations)
        )
    return SandboxResult(ok=ok, violations=violations, messages=messages)


def validate_expression_or_raise(
    expression: str, policy: SandboxPolicy | None = None
) -> SandboxResult:
    """
    Like ``validate_expression`` but raises on any error-severity finding.

    Raises:
        SandboxViolationError: With every violated rule
    """
    result = validate_expression(expression, policy)
    if not result.ok:
        raise SandboxViolationError(expression, result.violations)
    return result


def _check_prohibited_patterns(
    text: str,
    policy: SandboxPolicy,
    messages: list[ValidationMessage],
    violations: list[str],
) -> None:
    for pattern in policy.prohibited_patterns:
        match = re.search(pattern, text, re.IGNORECASE)
        if match is None:
            continue
        violations.append(pattern)
        messages.append(
            ValidationMessage(
                severity=ValidationSeverity.ERROR,
                code=PROHIBITED_PATTERN,
                message=f"Expression contains prohibited pattern: {pattern}",
                location=match.group(0),
            )
        )


def _check_functions(
    text: str,
    policy: SandboxPolicy,
    messages: list[ValidationMessage],
    violations: list[str],
) -> None:
    seen: set[str] = set()
    for match in _FUNCTION_CALL.finditer(text):
        name = match.group(1)
        upper = name.upper()
        if upper in _OPERATOR_KEYWORDS or upper in policy.allowed_functions or upper in seen:
            continue
        seen.add(upper)
        severity = (
            ValidationSeverity.ERROR if policy.reject_unknown_functions else ValidationSeverity.WARNING
        )
        if severity == ValidationSeverity.ERROR:
            violations.append(f"function:{name}")
        messages.append(
            ValidationMessage(
                severity=severity,
                code=UNKNOWN_FUNCTION,
                message=f"Unknown function: {name}",
                location=name,
            )
        )


def _check_namespaces(
    text: str,
    policy: SandboxPolicy,
    messages: list[ValidationMessage],
    violations: list[str],
) -> None:
    for match in _QUALIFIED_NAME.finditer(text):
        name = match.group(1)
        if _namespace_allowed(name, policy.allowed_namespaces):
            continue
        violations.append(f"namespace:{name}")
        messages.append(
            ValidationMessage(
                severity=ValidationSeverity.ERROR,
                code=NAMESPACE_NOT_ALLOWED,
                message=f"Namespace not allowed: {name}",
                location=name,
            )
        )


def _namespace_allowed(name: str, allowed: tuple[str, ...]) -> bool:
    # Unqualified type names (Math.Round) resolve against System and VB modules.
    # Names compare case-insensitively, as VB resolves them.
    lowered = name.lower()
    candidates = (lowered, f"system.{lowered}", f"microsoft.visualbasic.{lowered}")
    for candidate in candidates:
        for namespace in allowed:
            namespace = namespace.lower()
            if candidate == namespace or candidate.startswith(namespace + "."):
                return True
    return False

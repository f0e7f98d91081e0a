"""
Text style normalization for report items.

RDL accepts a single font name per run, and table cells that hold date
labels read better right-aligned.
"""

import re

from rdlgen.domain.enums import TextAlignment

DEFAULT_FONT_FAMILY = "Microsoft YaHei"

# Legacy or localized font names mapped to widely installed families.
FONT_FAMILY_ALIASES = {
    "DFKai-SB": "KaiTi",
    "標楷體": "KaiTi",
    "MingLiU": "SimSun",
    "PMingLiU": "SimSun",
    "MingLiU_HKSCS": "SimSun",
    "SimSun": "SimSun",
    "NSimSun": "SimSun",
    "宋体": "SimSun",
    "SimHei": "SimHei",
    "黑体": "SimHei",
    "KaiTi": "KaiTi",
    "楷体": "KaiTi",
    "FangSong": "FangSong",
    "仿宋": "FangSong",
    "Microsoft YaHei": "Microsoft YaHei",
    "微软雅黑": "Microsoft YaHei",
}

_DATE_LABEL = re.compile(r"日期|\bdate\b", re.IGNORECASE)
_MAX_DATE_LABEL_LENGTH = 20


def normalize_font_family(font_family: str | None) -> str:
    """
    Single font name RDL can render.

    Examples:
        >>> normalize_font_family("PMingLiU")
        'SimSun'
        >>> normalize_font_family("Segoe UI, Arial, sans-serif")
        'Segoe UI'
        >>> normalize_font_family(None)
        'Microsoft YaHei'
    """
    if not font_family or not font_family.strip():
        return DEFAULT_FONT_FAMILY
    name = font_family.split(",")[0].strip().strip("'\"")
    return FONT_FAMILY_ALIASES.get(name, name) or DEFAULT_FONT_FAMILY


def detect_cell_alignment(text: str) -> TextAlignment | None:
    """Right alignment for short date labels; None leaves the default."""
    stripped = text.strip()
    if (
        _DATE_LABEL.search(stripped)
        and "(" not in stripped
        and len(stripped) < _MAX_DATE_LABEL_LENGTH
    ):
        return TextAlignment.RIGHT
    return None

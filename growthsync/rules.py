"""
Fixed rules for the growth-record file format and sync code.

Everything a file or transfer code is checked against lives here so the
accepted shapes stay in one place.
"""

from datetime import datetime

# --- Encodings ---
TARGET_ENCODING = "utf-8-sig"  # UTF-8 with BOM, what spreadsheet tools expect
LEGACY_ENCODING = "gb18030"  # superset of GBK, the usual legacy export encoding
UTF8_BOM = b"\xef\xbb\xbf"
UTF16_BOMS = (b"\xff\xfe", b"\xfe\xff")

# Leftovers of a BOM that went through one or two wrong decodes.
BOM_ARTIFACTS = (
    "\ufeff",
    "\ufffe",
    "\u00ef\u00bb\u00bf",  # cp1252 view of EF BB BF
    "\u9518?",  # GBK view of EF BB BF
    "\u9518\ufffd",
)

# --- CSV layout ---
NORMALIZED_DELIMITER = ","
CHILD_NAME_LABEL = "儿童姓名"
CHILD_NAME_LABELS = ("儿童姓名", "孩子姓名", "姓名", "child name", "child_name", "name")
HEADER_DATE_TOKENS = ("日期", "date")
CSV_HEADER = ("日期", "身高(cm)", "体重(kg)")
EXPORT_MIME_TYPE = "text/csv"
EXPORT_FILE_SUFFIX = "生长记录"

# --- Value domains ---
HEIGHT_MIN = 0.0  # exclusive
HEIGHT_MAX = 250.0
WEIGHT_MIN = 2.0
WEIGHT_MAX = 150.0
EARLIEST_RECORD = datetime(2000, 1, 1)

# --- Age ---
DAYS_PER_YEAR = 365.25
AGE_TEXT = "{years}岁{months}个月"

# --- Sync ---
SYNC_VERSION = "1.0"

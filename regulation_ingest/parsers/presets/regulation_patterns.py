"""Korean Regulation Compendium Line Patterns

Patterns run against a single line after ``normalize_line`` (trimmed,
whitespace collapsed), so they anchor on both ends and allow at most one
space between tokens.
"""
import re

# Hierarchy headings
EDITION_HEADER = r'^제\s?(\d+)\s?편\s+(.+)$'                      # 제3편 학칙
CHAPTER_HEADER = r'^제\s?(\d+)\s?장\s+(.+)$'                      # 제1장 총칙
REGULATION_CODE = r'(?:0|[1-9]\d{0,2})-(?:0|[1-9]\d{0,2})-(?:0|[1-9]\d{0,2})[A-Za-z]?'    # 1-3 digits, no leading zero
REGULATION_TITLE_CODE = (
    r'^(?P<title>\S.{0,99}?)\s+(?P<code>' + REGULATION_CODE + r')$'
)                                                                 # 학칙 3-1-1
REGULATION_CODE_TITLE = (
    r'^(?P<code>' + REGULATION_CODE + r')\s+(?P<title>\S.{0,99})$'
)                                                                 # 3-1-1 학칙
TITLE_LETTER = r'[가-힣A-Za-z]'
REGULATION_TITLE_ONLY = (
    r'^(?P<title>[가-힣A-Za-z0-9 ()\[\]【】․·-]{0,40}(?:규정|정관|학칙|세칙|기준))$'
)                                                                 # 장학규정

# Articles
ARTICLE_RANGE = r'^제\s?(\d+)\s?조\s?내지\s?제\s?(\d+)\s?조\s*(.*)$'   # 제5조 내지 제7조 삭제
ARTICLE_WITH_TITLE = r'^제\s?(\d+)\s?조\s?\(([^)]+)\)\s*(.*)$'        # 제1조(목적) 이 규정은...
ARTICLE_SIMPLE = r'^제\s?(\d+)\s?조(?=\s|$)\s*(.*)$'                 # 제2조 이 규정은...

# Clause markers
CIRCLED_DIGITS = (
    '①②③④⑤⑥⑦⑧⑨⑩⑪⑫⑬⑭⑮⑯⑰⑱⑲⑳'
    '㉑㉒㉓㉔㉕㉖㉗㉘㉙㉚㉛㉜㉝㉞㉟'
)
HANGUL_ENUMERATORS = '가나다라마바사아자차카타파하'
CLAUSE_CIRCLED = r'^([' + CIRCLED_DIGITS + r'])\s*(.*)$'             # ① 학생은...
CLAUSE_PAREN = r'^\(([' + HANGUL_ENUMERATORS + r']|\d{1,2})\)\s*(.+)$'  # (가) ... / (1) ...
CLAUSE_NUMBER = r'^(\d{1,2})\.\s+(.+)$'                            # 1. 입학
CLAUSE_HANGUL = r'^([' + HANGUL_ENUMERATORS + r'])\.\s*(.+)$'        # 가. 학부

# Appendix and attachments
APPENDIX = r'^부\s?칙(?:\s*[<(\[].*)?$'                             # 부칙 / 부칙 <2020. 3. 1.>
ATTACHMENT = r'^[<\[【(]?\s*(?:별표|별지|별첨)(?:\s*제?\s*\d+\s*호?)?'    # <별표 1> / [별지 제1호 서식]

# Clause type hints
PROVISO = r'다만|단서'
ENUMERATED_CONTENT = r'^(?:\d+|[가-힣])\.'

PATTERNS = {
    'edition': re.compile(EDITION_HEADER),
    'chapter': re.compile(CHAPTER_HEADER),
    'regulation_title_code': re.compile(REGULATION_TITLE_CODE),
    'regulation_code_title': re.compile(REGULATION_CODE_TITLE),
    'regulation_title_only': re.compile(REGULATION_TITLE_ONLY),
    'regulation_code': re.compile(r'^\d+-\d+-\d+$'),
    'title_letter': re.compile(TITLE_LETTER),
    'article_range': re.compile(ARTICLE_RANGE),
    'article_with_title': re.compile(ARTICLE_WITH_TITLE),
    'article_simple': re.compile(ARTICLE_SIMPLE),
    'clause_circled': re.compile(CLAUSE_CIRCLED),
    'clause_paren': re.compile(CLAUSE_PAREN),
    'clause_number': re.compile(CLAUSE_NUMBER),
    'clause_hangul': re.compile(CLAUSE_HANGUL),
    'appendix': re.compile(APPENDIX),
    'attachment': re.compile(ATTACHMENT),
    'proviso': re.compile(PROVISO),
    'enumerated_content': re.compile(ENUMERATED_CONTENT),
}

# Noise: lines that carry no content (page furniture, table headers, history)
NOISE_PATTERNS = {
    'page_number': r'^[-–—]?\s?\d{1,4}\s?[-–—]?$',                          # 12 / - 12 -
    'page_range': r'^\d{1,4}\s?/\s?\d{1,4}$',                               # 3 / 120
    'page_label': r'^(?:[Pp]\.?\s?|[Pp]age\s)\d{1,4}$|^\d{1,4}\s?(?:페이지|쪽)$',
    'running_header': r'^.{0,40}(?:規程集|규정집)(?:\s?[-–]?\s?\d{1,4}\s?[-–]?)?$',
    'table_header': (
        r'^(?:(?:구\s?분|항\s?목|내\s?용|비\s?고|성\s?명|직\s?위|소\s?속|확\s?인|날\s?짜|년월일|번\s?호|서\s?명)\s?){2,}$'
    ),
    'date_only': (
        r'^[<(\[]?\s?\d{4}\s?[.\-/년]\s?\d{1,2}\s?[.\-/월]\s?\d{1,2}\s?[.일]?\s?[>)\]]?$'
    ),
    'revision_history': (
        r'^[<(\[]\s?(?:개정|신설|삭제|본조신설|전문개정|일부개정|제정|폐지)[\d\s.,·\-~<>()\[\]]*[>)\]]$'
    ),
    'separator': r'^[-=_~*·•─━═.\s]{3,}$',
    'reference_mark': r'^※',
    'table_of_contents': r'^(?:차\s?례|목\s?차)$',
    'symbol_only': r'^[^\w가-힣]{1,5}$',
}

__all__ = [
    'PATTERNS',
    'NOISE_PATTERNS',
    'CIRCLED_DIGITS',
    'HANGUL_ENUMERATORS',
    'REGULATION_CODE',
]

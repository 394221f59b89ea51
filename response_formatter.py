import re
import bisect
from collections import namedtuple

# Một luật trong bảng quét: replace=None nghĩa là giữ nguyên đoạn khớp (bảo vệ)
Rule = namedtuple("Rule", ["name", "pattern", "replace", "priority"])


def apply_rules(text, rules):
    """
    Áp dụng bảng luật lên văn bản trong một lượt quét.
    Luật có priority nhỏ hơn thắng khi hai đoạn khớp chồng lên nhau; cùng priority
    thì luật đứng trước trong bảng thắng. Đoạn được bảo vệ (replace=None) giữ nguyên
    và chặn mọi luật ưu tiên thấp hơn bên trong nó.
    """
    if not text:
        return text

    candidates = []
    for order, rule in enumerate(rules):
        for match in rule.pattern.finditer(text):
            if match.start() == match.end():
                continue
            candidates.append((rule.priority, order, match.start(), match, rule))
    candidates.sort(key=lambda c: (c[0], c[1], c[2]))

    starts = []
    spans = []
    for _, _, start, match, rule in candidates:
        end = match.end()
        idx = bisect.bisect_left(starts, start)
        if idx > 0 and spans[idx - 1][1] > start:
            continue
        if idx < len(spans) and spans[idx][0] < end:
            continue
        starts.insert(idx, start)
        spans.insert(idx, (start, end, match, rule))

    pieces = []
    pos = 0
    for start, end, match, rule in spans:
        pieces.append(text[pos:start])
        if rule.replace is None:
            pieces.append(match.group(0))
        else:
            pieces.append(rule.replace(match))
        pos = end
    pieces.append(text[pos:])
    return "".join(pieces)


# --- LaTeX -------------------------------------------------------------------

MATH_GUARD_RULES = [
    Rule("escaped_inline", re.compile(r"\\\((.*?)\\\)", re.S), None, 0),
    Rule("escaped_block", re.compile(r"\\\[(.*?)\\\]", re.S), None, 0),
    Rule("html_tag", re.compile(r"<[A-Za-z/!][^<>]*>"), None, 0),
]

BLOCK_MATH_RE = re.compile(r"\$\$([^$]+?)\$\$")
# Không khớp nửa của cặp $$ để khối $$...$$ không bị tách thành inline
INLINE_MATH_RE = re.compile(r"(?<!\$)\$([^$\n]+?)\$(?!\$)")

DELIMITER_RULES = [
    Rule("block_math", BLOCK_MATH_RE, lambda m: "\\[" + m.group(1) + "\\]", 10),
    Rule("inline_math", INLINE_MATH_RE, lambda m: "\\(" + m.group(1) + "\\)", 20),
]

MATH_SYMBOLS = ["sin", "cos", "tan", "log", "ln", "π", "theta", "alpha", "beta", "gamma", "delta"]

SYMBOL_RULES = [
    Rule(
        "bare_symbol",
        re.compile(r"(?<![\w\\])(" + "|".join(MATH_SYMBOLS) + r")(?!\w)"),
        lambda m: "\\(" + m.group(1) + "\\)",
        30,
    ),
]

# Dùng khi chỉ bọc ký hiệu: giữ nguyên các đoạn $...$ chưa chuẩn hóa
DOLLAR_GUARD_RULES = [
    Rule("block_math_guard", BLOCK_MATH_RE, None, 10),
    Rule("inline_math_guard", INLINE_MATH_RE, None, 20),
]


def normalize_latex(text):
    """Đổi $$...$$ thành \\[...\\] và $...$ thành \\(...\\) cho MathJax."""
    return apply_rules(text, MATH_GUARD_RULES + DELIMITER_RULES)


def wrap_math_symbols(text):
    return apply_rules(text, MATH_GUARD_RULES + DOLLAR_GUARD_RULES + SYMBOL_RULES)


# --- Thuật ngữ ----------------------------------------------------------------

# Thứ tự quan trọng: khi chồng lấn, thuật ngữ đứng trước thắng
GLOSSARY_TERMS = [
    # Toán học
    "hiện tượng cảm ứng từ",
    "nguyên hàm",
    "tích phân",
    "đạo hàm",
    "vi phân",
    "hàm số",
    "phương trình vi phân",
    "chuỗi số",
    "số phức",
    "lý thuyết tập hợp",
    # Vật lý
    "động lượng",
    "điện từ trường",
    "quang học",
    "cơ học lượng tử",
    "thuyết tương đối",
    "nhiệt động học",
    "điện dung",
    # Hóa học
    "phản ứng oxy hóa khử",
    "nguyên tố",
    "phân tử",
    "liên kết hóa học",
    "hợp chất hữu cơ",
    # Sinh học
    "quang hợp",
    "tế bào",
    "ADN",
    "ARN",
    "đột biến gen",
    "protein",
]

TERM_SPAN = '<span class="term-explanation" data-term="{term}">{text}</span>'


def _term_pattern(term):
    words = [re.escape(word) for word in term.split()]
    return re.compile(r"\b(" + r"\s*".join(words) + r")\b", re.IGNORECASE)


def _term_rule(index, term):
    return Rule(
        term,
        _term_pattern(term),
        lambda m: TERM_SPAN.format(term=term, text=m.group(0)),
        100 + index,
    )


GLOSSARY_GUARD_RULES = [
    Rule("term_span", re.compile(r'<span class="term-explanation"[^>]*>.*?</span>', re.S), None, 0),
] + MATH_GUARD_RULES

GLOSSARY_RULES = [_term_rule(i, term) for i, term in enumerate(GLOSSARY_TERMS)]


def tag_glossary_terms(html):
    return apply_rules(html, GLOSSARY_GUARD_RULES + GLOSSARY_RULES)


# --- Đoạn văn và danh sách ---------------------------------------------------

LIST_ITEM_RE = re.compile(r"^\s*[*\-]\s+(\S.*)$")
BLOCK_TAG_RE = re.compile(r"^<(?:ul|ol|div|h[1-6]|hr|header|table|p|pre|blockquote)\b", re.IGNORECASE)
EXCESS_NEWLINES_RE = re.compile(r"\n{4,}")


def collapse_blank_lines(text):
    text = text.replace("\r\n", "\n")
    return EXCESS_NEWLINES_RE.sub("\n\n\n", text)


def build_lists(text):
    """Gom các dòng liên tiếp bắt đầu bằng * hoặc - thành một khối <ul>."""
    lines = []
    items = []

    def flush():
        if items:
            lines.extend(["", "<ul>" + "".join(f"<li>{item}</li>" for item in items) + "</ul>", ""])
            del items[:]

    for line in text.split("\n"):
        match = LIST_ITEM_RE.match(line)
        if match:
            items.append(match.group(1).strip())
            continue
        flush()
        lines.append(line)
    flush()
    return "\n".join(lines)


def is_block_html(paragraph):
    return bool(BLOCK_TAG_RE.match(paragraph))


def structure_text(text, on_paragraph=None):
    """
    Tách văn bản thành các khối HTML. Đoạn đã là thẻ khối thì giữ nguyên,
    còn lại bọc trong <p> và đổi xuống dòng thành <br>.
    on_paragraph (nếu có) được gọi trên từng đoạn vừa bọc.
    """
    blocks = []
    for para in build_lists(text).split("\n\n"):
        para = para.strip()
        if not para:
            continue
        if is_block_html(para):
            blocks.append(para)
            continue
        wrapped = "<p>" + para.replace("\n", "<br>") + "</p>"
        if on_paragraph is not None:
            wrapped = on_paragraph(wrapped)
        blocks.append(wrapped)
    return "\n\n".join(blocks)


def process_response(text):
    """
    Chuyển văn bản thô từ AI thành HTML để hiển thị:
    gộp dòng trống thừa, chuẩn hóa LaTeX, dựng đoạn/danh sách rồi gắn thuật ngữ.
    """
    if not text:
        return ""
    text = collapse_blank_lines(text)
    text = apply_rules(text, MATH_GUARD_RULES + DELIMITER_RULES + SYMBOL_RULES)
    return structure_text(text, on_paragraph=tag_glossary_terms)


def text_to_html(text):
    """Đổi văn bản thành các thẻ <p> theo dòng trống, không gắn thuật ngữ."""
    if not text:
        return ""
    paragraphs = [p.strip() for p in collapse_blank_lines(text).split("\n\n")]
    return "".join("<p>" + p.replace("\n", "<br>") + "</p>" for p in paragraphs if p)

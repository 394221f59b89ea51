import re
import json
import logging

from response_formatter import normalize_latex, text_to_html

QUESTION_JSON_RE = re.compile(r'\[\s*\{\s*"question"[\s\S]*\}\s*\]')
QUESTION_BLOCK_RE = re.compile(r"(?:\*\*)?Câu\s*(\d+)\s*:(?:\*\*)?([\s\S]*?)(?=(?:\*\*)?Câu\s*\d+\s*:|$)")
# Nhãn ở đầu dòng, hoặc giữa dòng khi viết hoa đúng và có dấu ":" ("Chọn đáp án đúng" không bị cắt nhầm)
ANSWER_LABEL_RE = re.compile(
    r"(?:^[ \t*_-]*(?i:Đáp\s*án)[ \t]*(?:\*\*)?[ \t]*:?|(?:\*\*)?Đáp\s*án[ \t]*(?:\*\*)?[ \t]*:)(?:\*\*)?",
    re.MULTILINE,
)
EXPLANATION_LABEL_RE = re.compile(
    r"(?:^[ \t*_-]*(?i:Giải\s*thích)[ \t]*(?:\*\*)?[ \t]*:?|(?:\*\*)?Giải\s*thích[ \t]*(?:\*\*)?[ \t]*:)(?:\*\*)?",
    re.MULTILINE,
)

FALLBACK_ANSWER = "<p>Vui lòng xem giải thích bên dưới</p>"
FALLBACK_EXPLANATION = (
    "<p>AI không tạo được câu trả lời theo định dạng yêu cầu. "
    "Bạn có thể dùng chức năng chính của ứng dụng để hỏi trực tiếp về bài tập này.</p>"
)


def _field_to_html(text):
    return text_to_html(normalize_latex(text.strip()))


def _accept_json_list(candidate):
    """Trả về danh sách câu hỏi nếu candidate là mảng JSON các object, ngược lại None."""
    try:
        parsed = json.loads(candidate)
    except ValueError:
        return None
    if not isinstance(parsed, list) or not parsed:
        return None
    if not all(isinstance(item, dict) for item in parsed):
        return None
    return parsed


def parse_json_pattern(raw_text):
    match = QUESTION_JSON_RE.search(raw_text)
    if not match:
        return None
    return _accept_json_list(match.group(0))


def parse_json_brackets(raw_text):
    start = raw_text.find("[")
    end = raw_text.rfind("]")
    if start == -1 or end == -1 or start >= end:
        return None
    return _accept_json_list(raw_text[start:end + 1])


def _split_labeled_sections(body):
    """
    Tách phần "Đáp án" và "Giải thích" khỏi thân câu hỏi.
    Mỗi phần kéo dài tới nhãn kế tiếp hoặc hết khối.
    """
    labels = []
    for key, label_re in (("answer", ANSWER_LABEL_RE), ("explanation", EXPLANATION_LABEL_RE)):
        match = label_re.search(body)
        if match:
            labels.append((match.start(), match.end(), key))
    labels.sort()

    sections = {"answer": "", "explanation": ""}
    question_parts = []
    pos = 0
    for i, (start, label_end, key) in enumerate(labels):
        question_parts.append(body[pos:start])
        end = labels[i + 1][0] if i + 1 < len(labels) else len(body)
        sections[key] = body[label_end:end].strip()
        pos = end
    question_parts.append(body[pos:])
    return "".join(question_parts).strip(), sections["answer"], sections["explanation"]


def parse_labeled_questions(raw_text, include_answers=True):
    questions = []
    for match in QUESTION_BLOCK_RE.finditer(raw_text):
        question, answer, explanation = _split_labeled_sections(match.group(2))
        if not include_answers:
            answer = explanation = ""
        questions.append({
            "question": _field_to_html(question),
            "answer": _field_to_html(answer),
            "explanation": _field_to_html(explanation),
        })
    return questions or None


def fallback_question(raw_text, include_answers=True, subject=None, grade=None):
    intro = ""
    if subject and grade:
        intro = f"<p>Dưới đây là nội dung bài tập về {subject} lớp {grade}:</p>"
    return {
        "question": intro + _field_to_html(raw_text or ""),
        "answer": FALLBACK_ANSWER if include_answers else "",
        "explanation": FALLBACK_EXPLANATION if include_answers else "",
    }


def extract_practice_questions(raw_text, expect_count=3, include_answers=True, subject=None, grade=None):
    """
    Trích xuất danh sách câu hỏi luyện tập từ phản hồi của AI.
    Thử lần lượt: mảng JSON chuẩn, JSON giữa [ và ], nhãn "Câu N:".
    Nếu tất cả đều không khớp thì trả về đúng một câu hỏi chứa toàn bộ văn bản.
    """
    raw_text = raw_text or ""
    strategies = [
        ("json_pattern", lambda: parse_json_pattern(raw_text)),
        ("json_brackets", lambda: parse_json_brackets(raw_text)),
        ("labeled", lambda: parse_labeled_questions(raw_text, include_answers)),
    ]
    for name, strategy in strategies:
        try:
            questions = strategy()
        except Exception as e:
            logging.warning(f"Practice strategy {name} failed: {str(e)}")
            questions = None
        if questions:
            if len(questions) != expect_count:
                logging.info(f"Requested {expect_count} questions, extracted {len(questions)} ({name})")
            else:
                logging.info(f"Extracted {len(questions)} questions ({name})")
            return questions
        logging.info(f"Practice strategy {name} found no questions")

    logging.warning("Could not parse practice questions, using fallback")
    return [fallback_question(raw_text, include_answers, subject, grade)]

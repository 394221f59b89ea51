BASE_SYSTEM_PROMPT = (
    "Bạn là trợ lý học tập AI bằng tiếng Việt. Hãy trả lời câu hỏi của người dùng một cách chính xác, "
    "đầy đủ và dễ hiểu. Sử dụng định dạng LaTeX cho các công thức toán học khi cần thiết. "
)

ACTION_PROMPTS = {
    "complete": "Hãy giải bài tập đầy đủ với các bước chi tiết và giải thích rõ ràng.",
    "concise": "Hãy giải bài tập một cách ngắn gọn, tập trung vào các bước chính và đáp án.",
    "hint": "Chỉ đưa ra gợi ý để người dùng tự giải bài tập, không đưa ra đáp án hoặc lời giải đầy đủ.",
}

DEFAULT_ACTION_PROMPT = "Trả lời dựa trên kiến thức của bạn về các môn học ở mọi cấp độ."


def generate_system_prompt(action=None):
    return BASE_SYSTEM_PROMPT + ACTION_PROMPTS.get(action, DEFAULT_ACTION_PROMPT)


def build_explain_prompt(term):
    return f'Giải thích thuật ngữ: "{term}"'


def build_practice_prompt(subject, grade, topic=None, count=3, include_answers=True):
    topic_text = f" với chủ đề {topic}" if topic else ""
    answer_text = (
        "Đáp án: [Đáp án cho câu hỏi]\nGiải thích: [Giải thích chi tiết lý do đáp án đúng]\n"
        if include_answers else ""
    )
    template = "\n".join(
        f"Câu {i}: [Nội dung câu hỏi]\n{answer_text}" for i in range(1, count + 1)
    )
    return f"""Hãy tạo {count} câu hỏi luyện tập chất lượng cao về môn {subject} lớp {grade}{topic_text}.

Yêu cầu cụ thể:
- Nội dung phải đúng kiến thức của môn {subject} lớp {grade}
- Câu hỏi phải rõ ràng, dễ hiểu và phù hợp với học sinh lớp {grade}
- Đa dạng về loại câu hỏi (trắc nghiệm, tự luận, điền khuyết, etc.)
- Có thể sử dụng công thức toán học khi cần thiết

Định dạng câu hỏi:
===
{template}===

Lưu ý: Hãy tuân thủ đúng định dạng trên và điền nội dung thực tế cho mỗi câu hỏi."""


def build_practice_system_prompt(subject, grade):
    return f"""Bạn là giáo viên chuyên môn hàng đầu về môn {subject}, với nhiều năm kinh nghiệm dạy học sinh lớp {grade}.
Nhiệm vụ của bạn là tạo các câu hỏi luyện tập chất lượng cao cho học sinh.
Hãy đảm bảo câu hỏi đúng kiến thức chương trình, phù hợp với độ tuổi, và theo đúng định dạng yêu cầu.
KHÔNG thêm bất kỳ thông tin nào ngoài các câu hỏi theo đúng định dạng đã chỉ định."""

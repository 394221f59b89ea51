import json
import unittest
from unittest.mock import patch

import app as app_module
from app import app
from ai_client import UpstreamModelError
from ocr import OCRError
from prompts import generate_system_prompt


class TestChatAPI(unittest.TestCase):
    def setUp(self):
        self.app = app.test_client()
        self.app.testing = True
        app_module.storage.clear_messages()

    def post(self, url, body):
        return self.app.post(url, data=json.dumps(body), content_type="application/json")

    @patch('app.generate_ai_response')
    def test_chat_returns_processed_assistant_message(self, mock_generate):
        mock_generate.return_value = "Đạo hàm của $x^2$ là $2x$"
        response = self.post('/api/chat', {"message": "Tính đạo hàm x^2", "action": "hint"})
        self.assertEqual(response.status_code, 200)
        data = json.loads(response.data)
        self.assertEqual(data["role"], "assistant")
        self.assertEqual(data["action"], "hint")
        self.assertIn("\\(x^2\\)", data["content"])
        self.assertTrue(data["content"].startswith("<p>"))

        messages = app_module.storage.get_messages()
        self.assertEqual([m.role for m in messages], ["assistant", "user", "assistant"])
        self.assertEqual(messages[1].content, "Tính đạo hàm x^2")

    @patch('app.generate_ai_response')
    def test_chat_builds_system_prompt_from_action(self, mock_generate):
        mock_generate.return_value = "ok"
        self.post('/api/chat', {"message": "2+2", "action": "concise"})
        mock_generate.assert_called_once_with("2+2", generate_system_prompt("concise"), None)

    @patch('app.generate_ai_response')
    def test_chat_passes_image_and_system_prompt(self, mock_generate):
        mock_generate.return_value = "ok"
        self.post('/api/chat', {"message": "Giải", "systemPrompt": "SYS", "imageData": "AAAA"})
        mock_generate.assert_called_once_with("Giải", "SYS", "AAAA")
        self.assertEqual(app_module.storage.get_messages()[1].image_data, "AAAA")

    @patch('app.generate_ai_response')
    def test_chat_requires_message(self, mock_generate):
        response = self.post('/api/chat', {"action": "hint"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("error", json.loads(response.data))
        mock_generate.assert_not_called()

    @patch('app.generate_ai_response')
    def test_chat_rejects_unknown_action(self, mock_generate):
        response = self.post('/api/chat', {"message": "abc", "action": "essay"})
        self.assertEqual(response.status_code, 400)
        mock_generate.assert_not_called()

    @patch('app.generate_ai_response')
    def test_chat_upstream_error(self, mock_generate):
        mock_generate.side_effect = UpstreamModelError("quota exceeded")
        response = self.post('/api/chat', {"message": "abc"})
        self.assertEqual(response.status_code, 500)
        data = json.loads(response.data)
        self.assertEqual(data["error"], "Failed to generate response")
        self.assertNotIn("quota", data["error"])
        self.assertEqual(len(app_module.storage.get_messages()), 1)

    @patch('app.generate_ai_response')
    def test_chat_timeout_is_flagged_retryable(self, mock_generate):
        mock_generate.side_effect = UpstreamModelError("timeout", retryable=True)
        response = self.post('/api/chat', {"message": "abc"})
        self.assertEqual(response.status_code, 500)
        self.assertTrue(json.loads(response.data)["retryable"])

    def test_non_json_body(self):
        response = self.app.post('/api/chat', data="message=abc")
        self.assertEqual(response.status_code, 400)


class TestExplainAPI(unittest.TestCase):
    def setUp(self):
        self.app = app.test_client()
        self.app.testing = True

    @patch('app.generate_ai_response')
    def test_explain(self, mock_generate):
        mock_generate.return_value = "Tích phân là phép toán ngược của đạo hàm."
        response = self.app.post('/api/explain', json={"term": "tích phân"})
        self.assertEqual(response.status_code, 200)
        explanation = json.loads(response.data)["explanation"]
        self.assertTrue(explanation.startswith("<p>"))
        self.assertEqual(mock_generate.call_args[0][0], 'Giải thích thuật ngữ: "tích phân"')

    @patch('app.generate_ai_response')
    def test_explain_requires_term(self, mock_generate):
        response = self.app.post('/api/explain', json={})
        self.assertEqual(response.status_code, 400)
        mock_generate.assert_not_called()

    @patch('app.generate_ai_response')
    def test_explain_upstream_error(self, mock_generate):
        mock_generate.side_effect = UpstreamModelError("down")
        response = self.app.post('/api/explain', json={"term": "ADN"})
        self.assertEqual(response.status_code, 500)


class TestPracticeAPI(unittest.TestCase):
    def setUp(self):
        self.app = app.test_client()
        self.app.testing = True

    @patch('app.generate_ai_response')
    def test_practice_labeled_questions(self, mock_generate):
        mock_generate.return_value = (
            "Câu 1: 2+2=?\nĐáp án: 4\nGiải thích: cộng hai số.\n\nCâu 2: 3+3=?\nĐáp án: 6"
        )
        response = self.app.post('/api/practice', json={"subject": "Toán", "grade": "3", "count": 2})
        self.assertEqual(response.status_code, 200)
        questions = json.loads(response.data)["questions"]
        self.assertEqual(len(questions), 2)
        self.assertEqual(questions[0]["answer"], "<p>4</p>")

        prompt = mock_generate.call_args[0][0]
        self.assertIn("Hãy tạo 2 câu hỏi", prompt)
        self.assertIn("Đáp án:", prompt)

    @patch('app.generate_ai_response')
    def test_practice_without_answers(self, mock_generate):
        mock_generate.return_value = "Câu 1: 2+2=?\nĐáp án: 4"
        response = self.app.post('/api/practice', json={
            "subject": "Toán", "grade": "3", "includeAnswers": False
        })
        questions = json.loads(response.data)["questions"]
        self.assertEqual(questions[0]["answer"], "")
        self.assertNotIn("Đáp án:", mock_generate.call_args[0][0])

    @patch('app.generate_ai_response')
    def test_practice_fallback(self, mock_generate):
        mock_generate.return_value = "Một đoạn văn không có định dạng."
        response = self.app.post('/api/practice', json={"subject": "Sinh học", "grade": "10"})
        self.assertEqual(response.status_code, 200)
        questions = json.loads(response.data)["questions"]
        self.assertEqual(len(questions), 1)
        self.assertIn("Sinh học lớp 10", questions[0]["question"])

    @patch('app.generate_ai_response')
    def test_practice_requires_subject_and_grade(self, mock_generate):
        response = self.app.post('/api/practice', json={"subject": "Toán"})
        self.assertEqual(response.status_code, 400)
        mock_generate.assert_not_called()

    @patch('app.generate_ai_response')
    def test_practice_invalid_count(self, mock_generate):
        response = self.app.post('/api/practice', json={"subject": "Toán", "grade": "3", "count": "nhiều"})
        self.assertEqual(response.status_code, 400)

    @patch('app.generate_ai_response')
    def test_practice_count_is_clamped(self, mock_generate):
        mock_generate.return_value = "Câu 1: a"
        self.app.post('/api/practice', json={"subject": "Toán", "grade": "3", "count": 50})
        self.assertIn("Hãy tạo 10 câu hỏi", mock_generate.call_args[0][0])

    @patch('app.generate_ai_response')
    def test_practice_upstream_error(self, mock_generate):
        mock_generate.side_effect = UpstreamModelError("down")
        response = self.app.post('/api/practice', json={"subject": "Toán", "grade": "3"})
        self.assertEqual(response.status_code, 500)
        self.assertNotIn("rawResponse", json.loads(response.data))

    @patch('app.generate_ai_response')
    def test_practice_unexpected_model_error(self, mock_generate):
        mock_generate.side_effect = ValueError("invalid timeout value")
        response = self.app.post('/api/practice', json={"subject": "Toán", "grade": "3"})
        self.assertEqual(response.status_code, 500)
        data = json.loads(response.data)
        self.assertEqual(data["error"], "Không thể tạo câu hỏi luyện tập. Vui lòng thử lại sau.")
        self.assertNotIn("rawResponse", data)

    @patch('app.extract_practice_questions', side_effect=RuntimeError("boom"))
    @patch('app.generate_ai_response')
    def test_practice_processing_error_includes_raw_response(self, mock_generate, mock_extract):
        mock_generate.return_value = "raw text"
        response = self.app.post('/api/practice', json={"subject": "Toán", "grade": "3"})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(json.loads(response.data)["rawResponse"], "raw text")


class TestMessagesAPI(unittest.TestCase):
    def setUp(self):
        self.app = app.test_client()
        self.app.testing = True
        app_module.storage.clear_messages()

    @patch('app.generate_ai_response')
    def test_list_and_clear(self, mock_generate):
        mock_generate.return_value = "ok"
        self.app.post('/api/chat', json={"message": "abc"})

        messages = json.loads(self.app.get('/api/messages').data)["messages"]
        self.assertEqual(len(messages), 3)
        self.assertEqual(messages[1]["content"], "abc")

        cleared = json.loads(self.app.delete('/api/messages').data)["messages"]
        self.assertEqual(len(cleared), 1)
        self.assertEqual(cleared[0]["role"], "assistant")
        self.assertEqual(len(json.loads(self.app.get('/api/messages').data)["messages"]), 1)


class TestOcrAPI(unittest.TestCase):
    def setUp(self):
        self.app = app.test_client()
        self.app.testing = True

    @patch('app.extract_text_from_image', return_value="Câu 1: 2+2=?")
    def test_ocr(self, mock_extract):
        response = self.app.post('/api/ocr', json={"imageData": "AAAA"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.data)["text"], "Câu 1: 2+2=?")

    def test_ocr_requires_image(self):
        self.assertEqual(self.app.post('/api/ocr', json={}).status_code, 400)

    @patch('app.extract_text_from_image', side_effect=OCRError("bad image"))
    def test_ocr_error(self, mock_extract):
        response = self.app.post('/api/ocr', json={"imageData": "AAAA"})
        self.assertEqual(response.status_code, 500)


if __name__ == '__main__':
    unittest.main()

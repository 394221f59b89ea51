from flask import Flask, request, jsonify
import os
import json
import logging
import tempfile

from ai_client import generate_ai_response, UpstreamModelError
from response_formatter import process_response
from ocr import extract_text_from_image, OCRError
from practice_parser import extract_practice_questions
from prompts import (
    generate_system_prompt,
    build_explain_prompt,
    build_practice_prompt,
    build_practice_system_prompt,
)
from storage import ACTIONS, MessageStore, StorageError, validate_message

# Cấu hình logging
logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper(),
                    format='%(asctime)s - %(levelname)s - %(message)s')

# Kiểm tra nếu GOOGLE_APPLICATION_CREDENTIALS chứa nội dung JSON trực tiếp (dùng cho OCR)
if os.environ.get('GOOGLE_APPLICATION_CREDENTIALS', '').startswith('{'):
    try:
        creds_content = json.loads(os.environ['GOOGLE_APPLICATION_CREDENTIALS'])
        with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as temp_file:
            json.dump(creds_content, temp_file)
            temp_file_path = temp_file.name
        os.environ['GOOGLE_APPLICATION_CREDENTIALS'] = temp_file_path
        logging.info(f'Temporary credentials file created at: {temp_file_path}')
    except Exception as e:
        logging.error(f'Error creating temporary credentials file: {str(e)}')

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = int(os.environ.get('MAX_CONTENT_LENGTH', 16 * 1024 * 1024))  # 16MB
app.config['MESSAGE_LOG_CAPACITY'] = int(os.environ.get('MESSAGE_LOG_CAPACITY', 500))
app.config['PRACTICE_MAX_COUNT'] = 10

storage = MessageStore(capacity=app.config['MESSAGE_LOG_CAPACITY'])


class ValidationError(Exception):
    pass


def get_json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def upstream_error_response(e, message):
    body = {"error": message}
    if e.retryable:
        body["retryable"] = True
    return jsonify(body), 500


def parse_count(value):
    if value is None:
        return 3
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Count must be a number")
    return max(1, min(count, app.config['PRACTICE_MAX_COUNT']))


@app.errorhandler(ValidationError)
def handle_validation_error(e):
    return jsonify({"error": str(e)}), 400


@app.errorhandler(413)
def handle_too_large(e):
    return jsonify({"error": "Dữ liệu gửi lên quá lớn"}), 413


@app.route("/api/chat", methods=["POST"])
def chat():
    data = get_json_body()
    message = data.get("message")
    system_prompt = data.get("systemPrompt")
    action = data.get("action") or None
    image_data = data.get("imageData") or None

    if not message or not isinstance(message, str):
        raise ValidationError("Message is required")
    if image_data is not None and not isinstance(image_data, str):
        raise ValidationError("Image data must be a base64 string")
    if action is not None and action not in ACTIONS:
        raise ValidationError(f"Unknown action: {action}")

    try:
        raw_response = generate_ai_response(message, system_prompt or generate_system_prompt(action), image_data)
        content = process_response(raw_response)

        # Kiểm tra cả hai tin nhắn trước khi lưu để không lưu dở dang
        validate_message("user", message, action, image_data)
        validate_message("assistant", content, action)
        storage.save_message("user", message, action=action, image_data=image_data)
        assistant_message = storage.save_message("assistant", content, action=action)
        return jsonify(assistant_message.to_dict()), 200
    except UpstreamModelError as e:
        logging.error(f"Error in chat endpoint: {str(e)}")
        return upstream_error_response(e, "Failed to generate response")
    except StorageError as e:
        logging.error(f"Error saving chat messages: {str(e)}")
        return jsonify({"error": "Failed to generate response"}), 500
    except Exception as e:
        logging.error(f"Error in chat endpoint: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to generate response"}), 500


@app.route("/api/explain", methods=["POST"])
def explain():
    data = get_json_body()
    term = data.get("term")
    if not term:
        raise ValidationError("Term is required")

    try:
        raw_response = generate_ai_response(build_explain_prompt(term), data.get("systemPrompt"))
        return jsonify({"explanation": process_response(raw_response)}), 200
    except UpstreamModelError as e:
        logging.error(f"Error in explain endpoint: {str(e)}")
        return upstream_error_response(e, "Failed to generate explanation")
    except Exception as e:
        logging.error(f"Error in explain endpoint: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to generate explanation"}), 500


@app.route("/api/practice", methods=["POST"])
def practice():
    data = get_json_body()
    subject = data.get("subject")
    grade = data.get("grade")
    topic = data.get("topic")
    include_answers = data.get("includeAnswers", True) is not False

    if not subject or not grade:
        raise ValidationError("Subject and grade are required")
    count = parse_count(data.get("count"))

    try:
        raw_response = generate_ai_response(
            build_practice_prompt(subject, grade, topic, count, include_answers),
            build_practice_system_prompt(subject, grade),
        )
    except UpstreamModelError as e:
        logging.error(f"Error in practice questions endpoint: {str(e)}")
        return upstream_error_response(e, "Không thể tạo câu hỏi luyện tập. Vui lòng thử lại sau.")
    except Exception as e:
        logging.error(f"Error in practice questions endpoint: {str(e)}", exc_info=True)
        return jsonify({"error": "Không thể tạo câu hỏi luyện tập. Vui lòng thử lại sau."}), 500

    try:
        questions = extract_practice_questions(raw_response, count, include_answers, subject, grade)
        return jsonify({"questions": questions}), 200
    except Exception as e:
        logging.error(f"Error processing AI response: {str(e)}", exc_info=True)
        return jsonify({
            "error": "Có lỗi xảy ra khi xử lý phản hồi từ AI. Vui lòng thử lại.",
            "rawResponse": raw_response
        }), 500


@app.route("/api/messages", methods=["GET"])
def list_messages():
    return jsonify({"messages": [m.to_dict() for m in storage.get_messages()]})


@app.route("/api/messages", methods=["DELETE"])
def clear_messages():
    messages = storage.clear_messages()
    logging.info("Message log cleared")
    return jsonify({"messages": [m.to_dict() for m in messages]})


@app.route("/api/ocr", methods=["POST"])
def ocr():
    image_data = get_json_body().get("imageData")
    if not image_data or not isinstance(image_data, str):
        raise ValidationError("Image data is required")

    try:
        return jsonify({"text": extract_text_from_image(image_data)}), 200
    except OCRError as e:
        logging.error(f"Error in OCR endpoint: {str(e)}")
        return jsonify({"error": "Failed to extract text from image"}), 500


if __name__ == "__main__":
    app.run(debug=True)

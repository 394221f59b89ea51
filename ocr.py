import io
import base64
import binascii
import logging

from PIL import Image, UnidentifiedImageError
from google.cloud import vision

from ai_client import split_image_data

MIN_TEXT_LENGTH = 3
NO_TEXT_MESSAGE = "Không thể trích xuất văn bản từ hình ảnh này. Vui lòng thử lại với ảnh rõ hơn."


class OCRError(Exception):
    pass


def decode_image(image_data):
    """Giải mã base64 (chấp nhận data URL) và kiểm tra đây đúng là ảnh."""
    _, data = split_image_data(image_data)
    try:
        content = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise OCRError(f"Invalid base64 image data: {str(e)}")

    try:
        with Image.open(io.BytesIO(content)) as image:
            image.verify()
            logging.info(f"Decoded image: format={image.format}, size={image.size}, {len(content)} bytes")
    except (UnidentifiedImageError, OSError) as e:
        raise OCRError(f"Data is not a valid image: {str(e)}")
    return content


def extract_text_from_image(image_data, client=None):
    content = decode_image(image_data)

    try:
        client = client or vision.ImageAnnotatorClient()
        logging.info("Calling Vision API text_detection")
        response = client.text_detection(image=vision.Image(content=content))
    except Exception as e:
        logging.error(f"Error extracting text from image: {str(e)}", exc_info=True)
        raise OCRError(f"Failed to extract text from image: {str(e)}")

    if response.error.message:
        logging.error(f"Vision API error: {response.error.message}")
        raise OCRError(f"Failed to extract text from image: {response.error.message}")

    texts = response.text_annotations
    logging.info(f"Number of text annotations: {len(texts) if texts else 0}")
    text = texts[0].description.strip() if texts else ""
    if len(text) < MIN_TEXT_LENGTH:
        logging.warning("No text found in image.")
        return NO_TEXT_MESSAGE
    return text

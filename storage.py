import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

ROLES = ("user", "assistant", "system")
ACTIONS = ("complete", "concise", "hint")

WELCOME_CONTENT = (
    "<p>Xin chào! Tôi là trợ lý học tập AI bằng tiếng Việt. Tôi có thể giúp bạn:</p>\n"
    "<ul>"
    "<li>Giải bài tập đầy đủ</li>"
    "<li>Giải bài tập rút gọn</li>"
    "<li>Gợi ý hướng làm bài</li>"
    "<li>Giải bài tập từ ảnh (dùng nút tải ảnh bên dưới)</li>"
    "</ul>\n"
    "<p>Hãy nhập bài tập của bạn hoặc tải ảnh lên để bắt đầu!</p>"
)


class StorageError(Exception):
    pass


@dataclass(frozen=True)
class ChatMessage:
    id: int
    role: str
    content: str
    timestamp: datetime
    action: Optional[str] = None
    image_data: Optional[str] = None

    def to_dict(self):
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "action": self.action,
            "imageData": self.image_data,
        }


def validate_message(role, content, action=None, image_data=None):
    if role not in ROLES:
        raise StorageError(f"Invalid message role: {role!r}")
    if not isinstance(content, str):
        raise StorageError("Message content must be a string")
    if action is not None and action not in ACTIONS:
        raise StorageError(f"Invalid message action: {action!r}")
    if image_data is not None and not isinstance(image_data, str):
        raise StorageError("Image data must be a base64 string")


class MessageStore:
    """
    Nhật ký tin nhắn trong bộ nhớ, giữ thứ tự thêm vào.
    Khi vượt quá capacity thì bỏ tin nhắn cũ nhất. clear_messages() đưa nhật ký
    về đúng một tin nhắn chào mừng.
    """

    def __init__(self, capacity=500):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._messages = {}
        self._next_id = 1
        self._reset()

    def _reset(self):
        self._messages.clear()
        self._append("assistant", WELCOME_CONTENT)

    def _append(self, role, content, action=None, image_data=None, timestamp=None):
        message = ChatMessage(
            id=self._next_id,
            role=role,
            content=content,
            timestamp=timestamp or datetime.now(timezone.utc),
            action=action,
            image_data=image_data,
        )
        self._next_id += 1
        self._messages[message.id] = message
        if len(self._messages) > self.capacity:
            oldest_id = next(iter(self._messages))
            self._messages.pop(oldest_id)
            logging.info(f"Message log full ({self.capacity}), evicted message {oldest_id}")
        return message

    def save_message(self, role, content, action=None, image_data=None, timestamp=None):
        validate_message(role, content, action, image_data)
        with self._lock:
            return self._append(role, content, action, image_data, timestamp)

    def get_messages(self):
        with self._lock:
            return list(self._messages.values())

    def clear_messages(self):
        with self._lock:
            self._reset()
            return list(self._messages.values())

    def __len__(self):
        with self._lock:
            return len(self._messages)

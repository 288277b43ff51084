from models.stream_models import ChatMessage
from services.streaming.message_transform import build_upstream_messages, collapse_content, expand_images


def test_message_without_images_passes_through():
    message = ChatMessage(role="user", content="hello")
    assert expand_images(message) == {"role": "user", "content": "hello"}


def test_images_come_first_in_order_then_text():
    urls = ("https://img/3.png", "https://img/1.png", "https://img/2.png")
    expanded = expand_images(ChatMessage(role="user", content="what is this?", images=urls))

    parts = expanded["content"]
    assert [part["type"] for part in parts] == ["image", "image", "image", "text"]
    assert [part["source"]["url"] for part in parts[:3]] == list(urls)
    assert parts[-1] == {"type": "text", "text": "what is this?"}


def test_expanded_content_collapses_back_losslessly():
    message = ChatMessage(role="user", content="describe", images=("a.png", "b.png"))
    text, images = collapse_content(expand_images(message)["content"])
    assert text == message.content
    assert images == message.images


def test_empty_text_adds_no_text_part():
    expanded = expand_images(ChatMessage(role="user", content="", images=("a.png",)))
    assert expanded["content"] == [{"type": "image", "source": {"type": "url", "url": "a.png"}}]


def test_upstream_messages_keep_conversation_order_after_system_prompt():
    messages = (
        ChatMessage(role="user", content="first"),
        ChatMessage(role="assistant", content="second"),
        ChatMessage(role="user", content="third"),
    )
    payload = build_upstream_messages("SYSTEM", messages)
    assert payload[0] == {"role": "system", "content": "SYSTEM"}
    assert [entry["content"] for entry in payload[1:]] == ["first", "second", "third"]

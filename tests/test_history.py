import json

from accessai.agent.history import ConversationHistory


def test_persists_and_reloads(tmp_path):
    path = tmp_path / "history" / "history.json"
    history = ConversationHistory(path)
    history.add_exchange("open courses", "Opened the Courses page.")
    history.save()

    reloaded = ConversationHistory(path)
    reloaded.load()

    assert [(e.role, e.type, e.text) for e in reloaded.entries] == [
        ("user", "cmd", "open courses"),
        ("assistant", "reply", "Opened the Courses page."),
    ]


def test_keeps_only_the_newest_entries():
    history = ConversationHistory(max_entries=4)
    for i in range(5):
        history.add_exchange(f"command {i}", f"reply {i}")
    assert len(history.entries) == 4
    assert history.entries[0].text == "command 3"


def test_recent_messages_are_chat_messages():
    history = ConversationHistory()
    history.add_exchange("first", "one")
    history.add_exchange("second", "two")
    assert history.recent_messages(3) == [
        {"role": "assistant", "content": "one"},
        {"role": "user", "content": "second"},
        {"role": "assistant", "content": "two"},
    ]
    assert history.recent_messages(0) == []


def test_clear_writes_an_empty_file(tmp_path):
    path = tmp_path / "history.json"
    history = ConversationHistory(path)
    history.add_exchange("a", "b")
    history.save()
    history.clear()
    assert json.loads(path.read_text()) == []


def test_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / "history.json"
    path.write_text("{not json")
    history = ConversationHistory(path)
    history.load()
    assert history.entries == []


def test_null_timestamp_loads_as_zero(tmp_path):
    path = tmp_path / "history.json"
    path.write_text(json.dumps([{"role": "user", "type": "cmd", "text": "open courses", "timestamp": None}]))
    history = ConversationHistory(path)
    history.load()
    assert [(e.text, e.timestamp) for e in history.entries] == [("open courses", 0.0)]


def test_unexpected_file_shape_starts_empty(tmp_path):
    path = tmp_path / "history.json"
    path.write_text("42")
    history = ConversationHistory(path)
    history.load()
    assert history.entries == []


def test_unwritable_location_is_logged_not_raised(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    history = ConversationHistory(blocker / "history.json")
    history.add_exchange("open courses", "Opened Courses.")
    history.save()
    assert not (blocker / "history.json").exists()

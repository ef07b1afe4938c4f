import pytest

from envoy_backend.models.thread import Message, MessageMetadata, Thread, ThreadContainer
from envoy_backend.services.persistence import (
    ThreadFileError,
    ThreadPersistence,
    thread_from_markdown,
    thread_to_markdown,
)
from envoy_backend.services.thread_store import ThreadStore

# ========================================================================
# File format
# ========================================================================


class TestMarkdownFormat:
    def test_frontmatter_and_headers(self):
        thread = Thread(title="Plan", container=ThreadContainer.agent("Marcus Chen"), is_starred=True)
        thread.add_message(Message.user("How should I prepare?"))
        thread.add_message(Message.assistant("Start with the role.", agent_name="Marcus Chen"))

        text = thread_to_markdown(thread)

        assert text.startswith("---\n")
        assert f'id: "{thread.id}"' in text
        assert 'agentName: "Marcus Chen"' in text
        assert "starred: true" in text
        assert "pinned" not in text
        assert "\n[user] " in text
        assert "\n[assistant:Marcus Chen] " in text

    def test_reads_back_a_saved_thread(self):
        thread = Thread(
            title="Plan",
            container=ThreadContainer.space("work"),
            is_pinned=True,
            context_id="ctx-1",
            model_id="llama3",
            provider_id="ollama",
        )
        thread.add_message(Message.user("first line\nsecond line"))
        thread.add_message(
            Message.assistant("reply", agent_name="Sage Meadows", metadata=MessageMetadata(tokens=3))
        )

        loaded = thread_from_markdown(thread_to_markdown(thread))

        assert loaded.id == thread.id
        assert loaded.container == thread.container
        assert (loaded.is_pinned, loaded.is_starred) == (True, False)
        assert (loaded.context_id, loaded.model_id, loaded.provider_id) == ("ctx-1", "llama3", "ollama")
        assert loaded.created_at == thread.created_at
        assert [(m.id, m.role, m.content, m.agent_name) for m in loaded.messages] == [
            (m.id, m.role, m.content, m.agent_name) for m in thread.messages
        ]
        assert loaded.participants == ["user", "Sage Meadows"]

    def test_message_text_and_metadata_survive_exactly(self, tmp_path):
        thread = Thread(title="Notes")
        thread.add_message(Message.user("Quote:\n[user] hello there\n\\escaped"))
        thread.add_message(
            Message.assistant(
                "  indented code\n",
                metadata=MessageMetadata(model="llama3", provider="LM Studio", tokens=12, latency_ms=340),
            )
        )
        thread.add_message(Message.user("\n\ntrailing blanks\n\n"))
        persistence = ThreadPersistence(str(tmp_path))
        persistence.save_thread(thread)

        loaded = persistence.load_all()[0]

        assert loaded.messages == thread.messages

    @pytest.mark.parametrize(
        "text",
        [
            "no frontmatter here",
            "---\ntitle: \"x\"\n---\n",
            "---\nid: \"abc\"\n",
            "---\nid: \"abc\"\ncreated: \"yesterday\"\n---\n",
        ],
    )
    def test_malformed_files(self, text):
        with pytest.raises(ThreadFileError):
            thread_from_markdown(text)


# ========================================================================
# Directory storage
# ========================================================================


class TestThreadPersistence:
    def test_store_survives_restart(self, tmp_path):
        store = ThreadStore(ThreadPersistence(str(tmp_path)))
        first = store.create(title="First")
        second = store.create(title="Second")
        store.append(first.id, Message.user("hello"))
        store.remove(second.id)

        reloaded = ThreadStore()
        reloaded.load(ThreadPersistence(str(tmp_path)).load_all())

        assert len(reloaded) == 1
        assert reloaded.get(first.id).messages[0].content == "hello"
        assert not (tmp_path / f"{second.id}.md").exists()

    def test_unreadable_files_are_skipped(self, tmp_path):
        persistence = ThreadPersistence(str(tmp_path))
        good = Thread(title="Good")
        persistence.save_thread(good)
        (tmp_path / "broken.md").write_text("not a thread", encoding="utf-8")

        assert [thread.id for thread in persistence.load_all()] == [good.id]

    def test_missing_directory_loads_nothing(self, tmp_path):
        assert ThreadPersistence(str(tmp_path / "nowhere")).load_all() == []

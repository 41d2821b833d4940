# tests/unit/pipeline/test_orchestrator.py - v1
"""Tests for pipeline/orchestrator.py: stage ordering, failure policy, run lock."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from pdfdigest.config import messages
from pdfdigest.core.errors import ConfigurationError, UpstreamError
from pdfdigest.pipeline.orchestrator import PipelineOrchestrator, build_document_title
from pdfdigest.pipeline.run_lock import ConversationLocks

CONV = "oc_chat1"
MSG = "om_trigger"
DOC_URL = "https://feishu.cn/docx/doxcn123"


def _orchestrator(store, chat, understanding, **kwargs) -> PipelineOrchestrator:
    return PipelineOrchestrator(store=store, chat=chat, understanding=understanding, **kwargs)


def _seed_two(store) -> None:
    # Seeded newest first so ordering has to come from the timestamps
    store.seed(f"chat_data/{CONV}/200_b.pdf", b"B")
    store.seed(f"chat_data/{CONV}/100_a.pdf", b"A")


class TestBuildDocumentTitle:
    def test_short_names(self):
        assert build_document_title(["a.pdf", "b.pdf"]) == "📄 分析报告: a.pdf, b.pdf"

    def test_truncated_with_ellipsis(self):
        names = ["contract_with_a_really_long_name_%d.pdf" % i for i in range(3)]
        title = build_document_title(names, max_chars=50)
        joined = ", ".join(names)
        assert title == messages.DOCUMENT_TITLE_PREFIX + joined[:50] + "..."

    def test_exact_limit_has_no_ellipsis(self):
        name = "x" * 46 + ".pdf"
        assert build_document_title([name], max_chars=50).endswith(name)


class TestSuccessfulRun:
    @pytest.mark.asyncio
    async def test_files_processed_oldest_first(self, store, mock_chat, mock_understanding):
        _seed_two(store)
        orch = _orchestrator(store, mock_chat, mock_understanding)

        outcome = await orch.run(CONV, MSG)

        assert outcome.status == "succeeded"
        assert outcome.file_count == 2
        uploaded = [c.args[0] for c in mock_understanding.upload.await_args_list]
        assert uploaded == ["a.pdf", "b.pdf"]
        file_ids = mock_understanding.summarize.await_args.args[0]
        assert file_ids == ["file-a.pdf", "file-b.pdf"]

    @pytest.mark.asyncio
    async def test_single_batched_summary_with_fixed_instructions(
        self, store, mock_chat, mock_understanding,
    ):
        _seed_two(store)
        await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)

        mock_understanding.summarize.assert_awaited_once()
        _, system, user = mock_understanding.summarize.await_args.args
        assert system == messages.SYSTEM_INSTRUCTION
        assert user == messages.USER_INSTRUCTION

    @pytest.mark.asyncio
    async def test_document_created_and_written(self, store, mock_chat, mock_understanding):
        _seed_two(store)
        await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)

        title = mock_chat.create_document.await_args.args[1]
        assert title == "📄 分析报告: a.pdf, b.pdf"
        mock_chat.append_text.assert_awaited_once_with(
            "t-test-token", "doxcn123", "## Summary\nKey points.",
        )

    @pytest.mark.asyncio
    async def test_cleanup_removes_exactly_gathered_files(
        self, store, mock_chat, mock_understanding,
    ):
        _seed_two(store)
        store.seed(f"chat_data/{CONV}/150_notes.txt", b"not a pdf")
        store.seed("chat_data/oc_other/100_x.pdf", b"other chat")
        await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)

        assert sorted(store.deleted) == [
            f"chat_data/{CONV}/100_a.pdf",
            f"chat_data/{CONV}/200_b.pdf",
        ]
        assert f"chat_data/{CONV}/150_notes.txt" in store.objects
        assert "chat_data/oc_other/100_x.pdf" in store.objects

    @pytest.mark.asyncio
    async def test_replies_ack_then_success(
        self, store, mock_chat, mock_understanding, sent_texts,
    ):
        _seed_two(store)
        outcome = await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)

        texts = sent_texts()
        assert texts[0] == messages.RUN_STARTED
        assert texts[-1] == messages.RUN_SUCCEEDED.format(file_count=2, document_url=DOC_URL)
        assert outcome.document_url == DOC_URL
        assert all(c.args[1] == MSG for c in mock_chat.reply_text.await_args_list)

    @pytest.mark.asyncio
    async def test_conversation_prefix_is_exact(self, store, mock_chat, mock_understanding):
        store.seed(f"chat_data/{CONV}/100_a.pdf")
        store.seed(f"chat_data/{CONV}0/100_other.pdf")
        await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)

        assert store.deleted == [f"chat_data/{CONV}/100_a.pdf"]

    @pytest.mark.asyncio
    async def test_uppercase_extension_is_picked_up(self, store, mock_chat, mock_understanding):
        store.seed(f"chat_data/{CONV}/100_SCAN.PDF")
        outcome = await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)
        assert outcome.status == "succeeded"


class TestEmptyInput:
    @pytest.mark.asyncio
    async def test_no_files_reports_once_and_touches_nothing(
        self, store, mock_chat, mock_understanding, sent_texts,
    ):
        outcome = await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)

        assert outcome.status == "empty"
        assert outcome.ok is True
        assert sent_texts().count(messages.NOTHING_TO_PROCESS) == 1
        mock_understanding.upload.assert_not_awaited()
        mock_understanding.summarize.assert_not_awaited()
        mock_chat.create_document.assert_not_awaited()
        mock_chat.append_text.assert_not_awaited()
        assert store.deleted == []

    @pytest.mark.asyncio
    async def test_only_non_documents_counts_as_empty(self, store, mock_chat, mock_understanding):
        store.seed(f"chat_data/{CONV}/100_photo.png")
        outcome = await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)
        assert outcome.status == "empty"
        assert store.deleted == []

    @pytest.mark.asyncio
    async def test_all_files_vanished_counts_as_empty(
        self, store, mock_chat, mock_understanding, sent_texts,
    ):
        orch = _orchestrator(store, mock_chat, mock_understanding)
        store.seed(f"chat_data/{CONV}/100_a.pdf")
        files = await orch.gather(CONV)
        store.objects.clear()

        async def _gather(conversation_id):
            return files

        orch.gather = _gather  # type: ignore[method-assign]
        outcome = await orch.run(CONV, MSG)

        assert outcome.status == "empty"
        assert sent_texts()[-1] == messages.NOTHING_TO_PROCESS
        mock_understanding.summarize.assert_not_awaited()


class TestStageFailures:
    @pytest.mark.asyncio
    async def test_upload_failure_aborts_and_keeps_files(
        self, store, mock_chat, mock_understanding, sent_texts,
    ):
        _seed_two(store)

        async def upload(name, content):
            if name == "b.pdf":
                raise UpstreamError("understanding", "quota exceeded")
            return f"file-{name}"

        mock_understanding.upload.side_effect = upload
        outcome = await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)

        assert outcome.status == "failed"
        assert "b.pdf" in outcome.error
        assert "quota exceeded" in outcome.error
        mock_understanding.summarize.assert_not_awaited()
        mock_chat.create_document.assert_not_awaited()
        assert store.deleted == []
        assert len(store.objects) == 2
        assert sent_texts()[-1] == messages.RUN_FAILED.format(error=outcome.error)

    @pytest.mark.asyncio
    async def test_summarize_failure_keeps_files(self, store, mock_chat, mock_understanding):
        _seed_two(store)
        mock_understanding.summarize.side_effect = UpstreamError(
            "understanding", "LLM generation failed: 500",
        )
        outcome = await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)

        assert outcome.status == "failed"
        assert "LLM generation failed" in outcome.error
        mock_chat.create_document.assert_not_awaited()
        assert store.deleted == []

    @pytest.mark.asyncio
    async def test_cleanup_delete_failure_keeps_success(
        self, store, mock_chat, mock_understanding, sent_texts,
    ):
        _seed_two(store)
        real_delete = store.delete
        failing_key = f"chat_data/{CONV}/100_a.pdf"

        async def delete(key):
            if key == failing_key:
                raise UpstreamError("storage", "delete denied")
            await real_delete(key)

        store.delete = delete
        outcome = await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)

        assert outcome.status == "succeeded"
        assert store.deleted == [f"chat_data/{CONV}/200_b.pdf"]
        assert list(store.objects) == [failing_key]
        assert sent_texts()[-1] == messages.RUN_SUCCEEDED.format(
            file_count=2, document_url=DOC_URL,
        )

    @pytest.mark.asyncio
    async def test_missing_summary_uses_placeholder(self, store, mock_chat, mock_understanding):
        _seed_two(store)
        mock_understanding.summarize.return_value = None
        outcome = await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)

        assert outcome.status == "succeeded"
        assert mock_chat.append_text.await_args.args[2] == messages.SUMMARY_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_document_creation_failure_keeps_files(
        self, store, mock_chat, mock_understanding,
    ):
        _seed_two(store)
        mock_chat.create_document.side_effect = UpstreamError("chat", "Failed to create Feishu doc: 99991663")
        outcome = await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)

        assert outcome.status == "failed"
        assert "99991663" in outcome.error
        assert store.deleted == []

    @pytest.mark.asyncio
    async def test_write_failure_still_succeeds_and_cleans_up(
        self, store, mock_chat, mock_understanding, sent_texts,
    ):
        _seed_two(store)
        mock_chat.append_text.side_effect = UpstreamError("chat", "Failed to write Feishu doc")
        outcome = await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)

        assert outcome.status == "succeeded"
        assert DOC_URL in sent_texts()[-1]
        assert len(store.deleted) == 2
        assert store.objects == {}

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reported_not_raised(
        self, store, mock_chat, mock_understanding, sent_texts,
    ):
        async def broken_list(prefix):
            raise RuntimeError("listing exploded")

        store.list = broken_list  # type: ignore[method-assign]
        outcome = await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)

        assert outcome.status == "failed"
        assert sent_texts()[-1] == "❌ 处理失败：listing exploded"

    @pytest.mark.asyncio
    async def test_understanding_misconfiguration_is_reported(
        self, store, mock_chat, mock_understanding,
    ):
        _seed_two(store)
        mock_understanding.upload.side_effect = ConfigurationError("DASHSCOPE_API_KEY 未配置")
        outcome = await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)

        assert outcome.status == "failed"
        assert outcome.error == "DASHSCOPE_API_KEY 未配置"
        assert store.deleted == []


class TestCredentials:
    @pytest.mark.asyncio
    async def test_missing_credentials_is_log_only(self, store, mock_chat, mock_understanding):
        _seed_two(store)
        mock_chat.acquire_token.side_effect = ConfigurationError("no app id")
        outcome = await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)

        assert outcome.status == "aborted"
        mock_chat.reply_text.assert_not_awaited()
        mock_understanding.upload.assert_not_awaited()
        assert len(store.objects) == 2

    @pytest.mark.asyncio
    async def test_token_request_failure_is_log_only(self, store, mock_chat, mock_understanding):
        mock_chat.acquire_token.side_effect = UpstreamError("chat", "invalid app secret")
        outcome = await _orchestrator(store, mock_chat, mock_understanding).run(CONV, MSG)

        assert outcome.status == "aborted"
        mock_chat.reply_text.assert_not_awaited()


class TestRunLock:
    @pytest.mark.asyncio
    async def test_busy_conversation_is_rejected(
        self, store, mock_chat, mock_understanding, sent_texts,
    ):
        _seed_two(store)
        locks = ConversationLocks()
        orch = _orchestrator(store, mock_chat, mock_understanding, locks=locks)

        with locks.hold(CONV):
            outcome = await orch.run(CONV, MSG)

        assert outcome.status == "busy"
        assert sent_texts() == [messages.RUN_BUSY]
        mock_understanding.upload.assert_not_awaited()
        assert store.deleted == []

    @pytest.mark.asyncio
    async def test_lock_released_after_failure(self, store, mock_chat, mock_understanding):
        _seed_two(store)
        locks = ConversationLocks()
        mock_chat.create_document.side_effect = UpstreamError("chat", "down")
        await _orchestrator(store, mock_chat, mock_understanding, locks=locks).run(CONV, MSG)

        assert locks.is_locked(CONV) is False

    @pytest.mark.asyncio
    async def test_overlapping_trigger_does_not_double_process(
        self, store, mock_chat, mock_understanding,
    ):
        _seed_two(store)
        release = asyncio.Event()
        started = asyncio.Event()

        async def slow_upload(name, content):
            started.set()
            await release.wait()
            return f"file-{name}"

        mock_understanding.upload.side_effect = slow_upload
        orch = _orchestrator(store, mock_chat, mock_understanding)

        first = asyncio.create_task(orch.run(CONV, "om_first"))
        await started.wait()
        second = await orch.run(CONV, "om_second")
        release.set()
        first_outcome = await first

        assert second.status == "busy"
        assert first_outcome.status == "succeeded"
        assert sorted(store.deleted) == [
            f"chat_data/{CONV}/100_a.pdf",
            f"chat_data/{CONV}/200_b.pdf",
        ]

    @pytest.mark.asyncio
    async def test_other_conversations_are_not_blocked(
        self, store, mock_chat, mock_understanding,
    ):
        store.seed("chat_data/oc_b/100_x.pdf")
        locks = ConversationLocks()
        orch = _orchestrator(store, mock_chat, mock_understanding, locks=locks)

        with locks.hold(CONV):
            outcome = await orch.run("oc_b", MSG)

        assert outcome.status == "succeeded"


class TestGather:
    @pytest.mark.asyncio
    async def test_sorted_by_upload_time_then_key(self, store, mock_chat, mock_understanding):
        same = datetime(2026, 1, 1, tzinfo=timezone.utc)
        store.seed(f"chat_data/{CONV}/b.pdf", uploaded_at=same)
        store.seed(f"chat_data/{CONV}/a.pdf", uploaded_at=same)
        files = await _orchestrator(store, mock_chat, mock_understanding).gather(CONV)
        assert [f.original_name for f in files] == ["a.pdf", "b.pdf"]
        assert all(f.conversation_id == CONV for f in files)

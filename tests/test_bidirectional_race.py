"""Both sync directions sharing one registry and a real mapping store."""

import asyncio
from datetime import datetime, timezone

from discussion_bridge.services.database import DatabaseService
from discussion_bridge.services.mapping_service import MappingService
from discussion_bridge.sync.events import GitHubDiscussion, ThreadCreated, ThreadInfo
from discussion_bridge.sync.forward import ForwardSyncHandler, ThreadSyncResult
from discussion_bridge.sync.registry import SyncRegistry
from discussion_bridge.sync.reverse import ReverseSyncHandler, ReverseSyncResult

from fakes import FakeChat, FakeGitHub

FORUM = "forum-1"


def _discussion(node_id: str, title: str) -> GitHubDiscussion:
    return GitHubDiscussion.model_validate(
        {
            "id": 7,
            "node_id": node_id,
            "title": title,
            "body": "",
            "html_url": f"https://github.com/o/r/discussions/{node_id}",
            "user": {"login": "octocat"},
        }
    )


class TestBidirectionalRace:
    """Near-simultaneous creation on both sides yields exactly one mapping."""

    def setup_method(self):
        self.chat = FakeChat()
        self.github = FakeGitHub()
        self.registry = SyncRegistry()

    def _handlers(self, mappings: MappingService, grace_period: float):
        forward = ForwardSyncHandler(
            chat=self.chat,
            github=self.github,
            mappings=mappings,
            registry=self.registry,
            forum_channel_id=FORUM,
            grace_period=grace_period,
        )
        reverse = ReverseSyncHandler(
            chat=self.chat,
            mappings=mappings,
            registry=self.registry,
            forum_channel_id=FORUM,
        )
        return forward, reverse

    def test_webhook_during_grace_period_links_instead_of_creating(self, tmp_path):
        self.chat.add_starter("t1", "Steps to repro…")
        self.chat.active_threads.append(
            ThreadInfo(id="t1", name="Bug: login fails", created_at=datetime.now(timezone.utc))
        )

        async def runner():
            db = DatabaseService(tmp_path / "bridge.db")
            await db.initialize()
            try:
                mappings = MappingService(db)
                forward, reverse = self._handlers(mappings, grace_period=0.2)

                async def webhook():
                    await asyncio.sleep(0.05)
                    return await reverse.handle_discussion_created(_discussion("D_9", "bug: login FAILS"))

                results = await asyncio.gather(
                    forward.handle_thread_created(
                        ThreadCreated(thread_id="t1", title="Bug: login fails", parent_id=FORUM)
                    ),
                    webhook(),
                )
                return results, await mappings.list_all()
            finally:
                await db.close()

        (forward_result, reverse_result), rows = asyncio.run(runner())

        assert forward_result == ThreadSyncResult.ALREADY_MAPPED
        assert reverse_result == ReverseSyncResult.LINKED_EXISTING
        assert self.github.create_calls == []
        assert self.chat.created_threads == []
        assert [(r.thread_id, r.discussion_id) for r in rows] == [("t1", "D_9")]

    def test_same_titled_discussion_linked_during_create_leaves_no_echo_thread(self, tmp_path):
        self.chat.add_starter("t1", "Steps to repro…")
        self.chat.active_threads.append(
            ThreadInfo(id="t1", name="Bug: login fails", created_at=datetime.now(timezone.utc))
        )

        async def runner():
            db = DatabaseService(tmp_path / "bridge.db")
            await db.initialize()
            try:
                mappings = MappingService(db)
                forward, reverse = self._handlers(mappings, grace_period=0)
                create_discussion = self.github.create_discussion
                linked = []

                async def human_discussion_arrives_mid_call(title, body):
                    linked.append(
                        await reverse.handle_discussion_created(_discussion("D_human", "Bug: login fails"))
                    )
                    return await create_discussion(title, body)

                self.github.create_discussion = human_discussion_arrives_mid_call

                forward_result = await forward.handle_thread_created(
                    ThreadCreated(thread_id="t1", title="Bug: login fails", parent_id=FORUM)
                )
                # FakeGitHub hands out d1 for the bridge's own discussion
                own_result = await reverse.handle_discussion_created(_discussion("d1", "Bug: login fails"))
                return linked, forward_result, own_result, await mappings.list_all()
            finally:
                await db.close()

        linked, forward_result, own_result, rows = asyncio.run(runner())

        assert linked == [ReverseSyncResult.LINKED_EXISTING]
        assert forward_result == ThreadSyncResult.SUPERSEDED
        assert own_result == ReverseSyncResult.OWN_DISCUSSION
        assert self.chat.created_threads == []
        assert [(r.thread_id, r.discussion_id) for r in rows] == [("t1", "D_human")]
        assert not any("https://github.com/o/r/discussions/1" in m for m in self.chat.messages_in("t1"))

    def test_thread_created_by_webhook_is_not_sent_back(self, tmp_path):
        async def runner():
            db = DatabaseService(tmp_path / "bridge.db")
            await db.initialize()
            try:
                mappings = MappingService(db)
                forward, reverse = self._handlers(mappings, grace_period=0)

                reverse_result = await reverse.handle_discussion_created(
                    _discussion("D_1", "Feature: dark mode")
                )
                thread_id = self.chat.created_threads[0][0]
                forward_result = await forward.handle_thread_created(
                    ThreadCreated(thread_id=thread_id, title="Feature: dark mode", parent_id=FORUM)
                )
                return reverse_result, forward_result, await mappings.list_all()
            finally:
                await db.close()

        reverse_result, forward_result, rows = asyncio.run(runner())

        assert reverse_result == ReverseSyncResult.CREATED_THREAD
        assert forward_result == ThreadSyncResult.SKIPPED
        assert self.github.create_calls == []
        assert len(rows) == 1

    def test_webhook_for_own_discussion_does_not_create_thread(self, tmp_path):
        self.chat.add_starter("t1", "Steps to repro…")

        async def runner():
            db = DatabaseService(tmp_path / "bridge.db")
            await db.initialize()
            try:
                mappings = MappingService(db)
                forward, reverse = self._handlers(mappings, grace_period=0)

                forward_result = await forward.handle_thread_created(
                    ThreadCreated(thread_id="t1", title="Bug: login fails", parent_id=FORUM)
                )
                # FakeGitHub hands out d1 for the first discussion
                reverse_result = await reverse.handle_discussion_created(
                    _discussion("d1", "Bug: login fails")
                )
                return forward_result, reverse_result, await mappings.list_all()
            finally:
                await db.close()

        forward_result, reverse_result, rows = asyncio.run(runner())

        assert forward_result == ThreadSyncResult.CREATED
        assert reverse_result == ReverseSyncResult.ALREADY_MAPPED
        assert self.chat.created_threads == []
        assert [(r.thread_id, r.discussion_id) for r in rows] == [("t1", "d1")]

"""Tests for MCP tool dispatch."""

from __future__ import annotations

import asyncio
import json

import pytest
from mcp import types

from memory_graph.config import MemoryGraphConfig
from memory_graph.mcp_server import TOOLS, create_server, dispatch, handle_call, run_sync
from memory_graph.memory import MemoryStore
from memory_graph.records import ValidationError


class TestTools:
    def test_tool_names(self):
        assert [t.name for t in TOOLS] == [
            "save_memory",
            "recall_memory",
            "list_memories",
            "delete_memory",
            "list_all_tags",
            "search_memory_content",
            "link_memories",
            "get_linked_memories",
            "find_related_memories",
            "find_memory_path",
            "search_by_relationship",
            "find_memories_within_degrees",
        ]

    def test_create_server(self, tmp_path):
        server = create_server(MemoryGraphConfig(memory_dir=tmp_path))
        assert server.name == "memory-graph"


class TestDispatch:
    def test_save_and_recall(self, store: MemoryStore):
        dispatch(store, "save_memory", {"key": "a", "value": "v", "tags": ["t"]})
        result = dispatch(store, "recall_memory", {"key": "a", "include_related": False})
        assert result["value"] == "v"
        assert result["tags"] == ["t"]
        assert "related_memories" not in result
        json.dumps(result)

    def test_tags_absent_vs_empty(self, store: MemoryStore):
        dispatch(store, "save_memory", {"key": "a", "value": "v", "tags": ["t"]})
        dispatch(store, "save_memory", {"key": "a", "value": "w"})
        assert dispatch(store, "recall_memory", {"key": "a"})["tags"] == ["t"]
        dispatch(store, "save_memory", {"key": "a", "value": "w", "tags": []})
        assert dispatch(store, "recall_memory", {"key": "a"})["tags"] == []

    def test_expiration_argument(self, store: MemoryStore):
        dispatch(store, "save_memory", {"key": "temp", "value": "v", "expires_in_seconds": -1})
        assert dispatch(store, "recall_memory", {"key": "temp"})["expires_at"] is None

    def test_missing_required_raises(self, store: MemoryStore):
        with pytest.raises(ValidationError):
            dispatch(store, "save_memory", {"key": "a"})
        with pytest.raises(ValidationError):
            dispatch(store, "find_memory_path", {"from_key": "a"})

    def test_not_found_is_soft(self, store: MemoryStore):
        result = dispatch(store, "find_memories_within_degrees", {"start_key": "ghost"})
        assert result == {"success": False, "message": "Start key not found: ghost"}

    def test_zero_defaults(self, store: MemoryStore):
        dispatch(store, "save_memory", {"key": "a", "value": "one"})
        result = dispatch(store, "find_memories_within_degrees", {"start_key": "a", "max_degrees": 0})
        assert result["max_degrees"] == 2

    def test_relationship_flow(self, store: MemoryStore):
        dispatch(store, "save_memory", {"key": "a", "value": "service"})
        dispatch(store, "save_memory", {"key": "b", "value": "database"})
        dispatch(store, "link_memories", {"source_key": "a", "target_key": "b", "relationship_type": "depends_on"})
        result = dispatch(store, "search_by_relationship", {"pattern": "* depends_on *"})
        assert result["total_matches"] == 1
        related = dispatch(store, "find_related_memories", {"memory_key": "b", "include_content": False})
        assert related["related_memories"][0]["reason"] == "reverse_link"

    def test_no_arguments(self, store: MemoryStore):
        assert dispatch(store, "list_memories", None) == {"keys": []}

    def test_unknown_tool(self, store: MemoryStore):
        with pytest.raises(ValueError, match="Unknown tool"):
            dispatch(store, "forget_everything", {})


class TestRunSync:
    def test_runs_in_executor(self):
        assert asyncio.run(run_sync(sum, [1, 2, 3])) == 6


class TestHandleCall:
    def test_single_json_text_block(self, store: MemoryStore):
        asyncio.run(handle_call(store, "save_memory", {"key": "a", "value": "v"}))
        content = asyncio.run(handle_call(store, "recall_memory", {"key": "a"}))
        assert len(content) == 1
        assert content[0].type == "text"
        assert json.loads(content[0].text)["value"] == "v"

    def test_hard_error_propagates(self, store: MemoryStore):
        with pytest.raises(ValidationError):
            asyncio.run(handle_call(store, "save_memory", {"key": "a", "value": ""}))

    def test_registered_handler(self, tmp_path):
        server = create_server(MemoryGraphConfig(memory_dir=tmp_path))
        handler = server.request_handlers[types.CallToolRequest]

        def call(name, arguments):
            request = types.CallToolRequest(
                method="tools/call",
                params=types.CallToolRequestParams(name=name, arguments=arguments),
            )
            result = asyncio.run(handler(request))
            return getattr(result, "root", result)

        saved = call("save_memory", {"key": "a", "value": "cats"})
        assert not saved.isError
        assert len(saved.content) == 1
        assert json.loads(saved.content[0].text) == {"success": True, "message": "Saved memory for key: a"}

        failed = call("save_memory", {"key": "", "value": ""})
        assert failed.isError
        assert "key and value are required" in failed.content[0].text


class TestConcurrentCalls:
    def test_parallel_saves_all_survive(self, store: MemoryStore):
        async def save_all():
            await asyncio.gather(*[
                run_sync(dispatch, store, "save_memory", {"key": f"k{i}", "value": f"value {i}"})
                for i in range(60)
            ])

        asyncio.run(save_all())
        assert len(store.list_memories()["keys"]) == 60

    def test_parallel_links_and_reads(self, store: MemoryStore):
        for i in range(10):
            store.save_memory(f"n{i}", f"node {i}")

        async def mixed():
            calls = []
            for i in range(1, 10):
                calls.append(run_sync(dispatch, store, "link_memories", {
                    "source_key": "n0", "target_key": f"n{i}", "relationship_type": "has",
                }))
                calls.append(run_sync(dispatch, store, "list_memories", {}))
            await asyncio.gather(*calls)

        asyncio.run(mixed())
        assert len(store.get_linked_memories("n0")["links"]) == 9
        assert len(store.list_memories()["keys"]) == 10

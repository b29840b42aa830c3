"""
Tool Directory Tests
--------------------
Aggregation, duplicate handling, name sanitization and schema translation.
"""

import pytest

from fakes import StubClient, tool
from mcp_bridge.directory import ToolDirectory, sanitize_tool_name, to_openai_tool
from mcp_bridge.errors import DuplicateToolError, RemoteError, UnknownToolError
from mcp_bridge.models import ToolDescriptor

WRITE_FILE = tool(
    "write_file",
    {"path": {"type": "string"}, "content": {"type": "string"}},
    ["path", "content"],
    description="Write a file",
)
READ_FILE = tool("read_file", {"path": {"type": "string"}}, ["path"])
GENERATE_IMAGE = tool(
    "generate_image",
    {
        "prompt": {"type": "string"},
        "megapixels": {"type": "string", "enum": ["1", "0.25"], "default": "1"},
        "options": {
            "type": "object",
            "properties": {"seed": {"type": "integer", "minimum": 0}},
            "additionalProperties": False,
        },
    },
    ["prompt"],
)


async def directory_with(*servers, policy="last_wins"):
    directory = ToolDirectory(duplicate_policy=policy)
    for server_id, client in servers:
        directory.register(server_id, client)
    await directory.refresh()
    return directory


class TestRefresh:
    """Building the namespace from registered clients."""

    async def test_tools_resolve_to_their_client(self):
        files = StubClient("filesystem", [WRITE_FILE, READ_FILE])
        flux = StubClient("flux", [GENERATE_IMAGE])

        directory = await directory_with(("filesystem", files), ("flux", flux))

        assert directory.resolve("write_file") is files
        assert directory.resolve("generate_image") is flux
        assert directory.owner_of("read_file") == "filesystem"
        assert len(directory) == 3
        assert directory.names() == ["write_file", "read_file", "generate_image"]

    async def test_unknown_tool(self):
        directory = await directory_with(("filesystem", StubClient("filesystem", [WRITE_FILE])))

        with pytest.raises(UnknownToolError, match="No MCP found for tool: delete_everything"):
            directory.resolve("delete_everything")
        assert "delete_everything" not in directory

    async def test_refresh_replaces_stale_entries(self):
        """Tools a backend stopped declaring disappear on the next refresh."""
        client = StubClient("filesystem", [WRITE_FILE, READ_FILE])
        directory = await directory_with(("filesystem", client))

        client.tools = [READ_FILE]
        await directory.refresh()

        assert directory.names() == ["read_file"]
        with pytest.raises(UnknownToolError):
            directory.resolve("write_file")

    async def test_not_ready_client_skipped(self):
        ready = StubClient("filesystem", [WRITE_FILE])
        dead = StubClient("flux", [GENERATE_IMAGE], ready=False)

        directory = await directory_with(("filesystem", ready), ("flux", dead))

        assert directory.names() == ["write_file"]

    async def test_list_failure_skips_only_that_backend(self):
        ok = StubClient("filesystem", [WRITE_FILE])
        broken = StubClient("flux", [GENERATE_IMAGE], list_error=RemoteError("boom"))

        directory = await directory_with(("filesystem", ok), ("flux", broken))

        assert directory.names() == ["write_file"]

    async def test_unregister(self):
        directory = await directory_with(
            ("filesystem", StubClient("filesystem", [WRITE_FILE])),
            ("flux", StubClient("flux", [GENERATE_IMAGE])),
        )

        directory.unregister("flux")
        await directory.refresh()

        assert directory.server_ids == ["filesystem"]
        assert "generate_image" not in directory


class TestDuplicates:
    """Same tool name declared by two backends."""

    async def test_last_registered_wins(self, caplog):
        first = StubClient("a", [tool("search", description="first")])
        second = StubClient("b", [tool("search", description="second")])

        directory = await directory_with(("a", first), ("b", second))

        assert directory.resolve("search") is second
        assert directory.describe("search").description == "second"
        assert len(directory) == 1
        assert "replaces the one from a" in caplog.text

    async def test_error_policy(self):
        first = StubClient("a", [tool("search")])
        second = StubClient("b", [tool("search")])

        with pytest.raises(DuplicateToolError, match="search"):
            await directory_with(("a", first), ("b", second), policy="error")

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValueError):
            ToolDirectory(duplicate_policy="first_wins")


class TestSanitization:
    """Model-facing names and their reverse mapping."""

    @pytest.mark.parametrize("original, expected", [
        ("write_file", "write_file"),
        ("Read-File", "read_file"),
        ("brave.search", "brave_search"),
        ("Generate Image", "generate_image"),
    ])
    def test_sanitize(self, original, expected):
        assert sanitize_tool_name(original) == expected

    async def test_both_names_resolve(self):
        client = StubClient("web", [tool("Brave.Search", {"q": {"type": "string"}})])
        directory = await directory_with(("web", client))

        assert directory.resolve("brave_search") is client
        assert directory.resolve("Brave.Search") is client
        assert directory.original_name("brave_search") == "Brave.Search"
        assert "brave_search" in directory

    async def test_exposed_name_in_function_definitions(self):
        directory = await directory_with(("web", StubClient("web", [tool("Brave.Search")])))

        (definition,) = directory.to_openai_tools()
        assert definition["function"]["name"] == "brave_search"

    async def test_colliding_sanitized_names(self, caplog):
        """Two originals mapping to one exposed name leave a single routable tool."""
        client = StubClient("web", [tool("fetch-url"), tool("fetch.url")])
        directory = await directory_with(("web", client))

        assert directory.original_name("fetch_url") == "fetch.url"
        assert [d["function"]["name"] for d in directory.to_openai_tools()] == ["fetch_url"]
        assert "both sanitize to" in caplog.text


class TestSchemaTranslation:
    """Descriptor to function-calling definition."""

    async def test_describe_returns_declared_schema(self):
        """A path/content tool reports exactly the schema its backend declared."""
        directory = await directory_with(("filesystem", StubClient("filesystem", [WRITE_FILE])))

        descriptor = directory.describe("write_file")

        assert descriptor.input_schema == WRITE_FILE["inputSchema"]
        assert descriptor.required == ["path", "content"]

    async def test_translation_is_lossless(self):
        """Nested objects, enums, defaults and constraints survive."""
        directory = await directory_with(("flux", StubClient("flux", [GENERATE_IMAGE])))

        (definition,) = directory.to_openai_tools()

        assert definition["type"] == "function"
        assert definition["function"]["parameters"] == GENERATE_IMAGE["inputSchema"]

    def test_missing_keys_filled(self):
        descriptor = ToolDescriptor(name="ping", input_schema={})

        definition = to_openai_tool(descriptor)

        assert definition["function"]["parameters"] == {"type": "object", "properties": {}, "required": []}
        assert definition["function"]["description"] == "Use the ping tool"

    def test_translation_does_not_share_schema(self):
        descriptor = ToolDescriptor.from_dict(WRITE_FILE)

        definition = to_openai_tool(descriptor)
        definition["function"]["parameters"]["properties"]["path"]["type"] = "integer"

        assert descriptor.properties["path"]["type"] == "string"

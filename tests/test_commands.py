"""Tests for command sets, sub-command resolution and the invocation wrapper."""

import pytest

from hearsay.commands import (
    CommandResult,
    CommandSet,
    Outcome,
    command_usage,
    new_command_handler,
    next_command,
    run_command_handler,
)
from hearsay.context import Context
from hearsay.exceptions import ErrorKind, HearsayError
from hearsay.message import Message
from hearsay.response import ResponseWriter


def _recorder(calls, name):
    async def handler(ctx, w, m):
        calls.append((name, list(m.args)))
    return handler


def _command_set(calls, *names):
    return CommandSet(*(
        new_command_handler(name, f"the {name} command", _recorder(calls, name))
        for name in names
    ))


async def _resolve(cs, text, adapter):
    return await cs.next_command(Context.background(), ResponseWriter(adapter), Message(text=text))


# -------------------------------------------------------------------
# Listing
# -------------------------------------------------------------------

class TestCommandSetList:

    def test_help_first_then_alphabetical(self):
        cs = _command_set([], "zap", "deploy", "help", "delete", "apply")
        assert cs.names() == ["help", "apply", "delete", "deploy", "zap"]

    def test_alphabetical_without_help(self):
        cs = _command_set([], "b", "c", "a")
        assert cs.names() == ["a", "b", "c"]

    def test_list_carries_descriptions(self):
        cs = _command_set([], "help", "deploy")
        names = [(name, desc) for name, desc, _ in cs.list()]
        assert names == [("help", "the help command"), ("deploy", "the deploy command")]

    def test_later_registration_replaces_earlier(self):
        calls = []
        cs = CommandSet()
        cs.add_command_handler(new_command_handler("x", "first", _recorder(calls, "first")))
        cs.add_command_handler(new_command_handler("x", "second", _recorder(calls, "second")))
        assert len(cs) == 1
        assert cs.get("x").describe() == ("x", "second")


# -------------------------------------------------------------------
# Resolution
# -------------------------------------------------------------------

class TestNextCommand:

    @pytest.mark.asyncio
    async def test_prefix_matching_several_is_ambiguous(self, adapter):
        calls = []
        cs = _command_set(calls, "help", "deploy", "delete")
        result = await _resolve(cs, "de", adapter)
        assert result.kind is ErrorKind.AMBIGUOUS_COMMAND
        assert result.error.candidates == ["delete", "deploy"]
        assert "delete, deploy" in str(result.error)
        assert calls == []

    @pytest.mark.asyncio
    async def test_del_is_unique_prefix_without_deploy(self, adapter):
        calls = []
        cs = _command_set(calls, "help", "delete")
        result = await _resolve(cs, "del x", adapter)
        assert result.outcome is Outcome.SUCCESS
        assert calls == [("delete", ["del", "x"])]

    @pytest.mark.asyncio
    async def test_exact_match_wins_over_prefix_ambiguity(self, adapter):
        calls = []
        cs = _command_set(calls, "help", "deploy", "delete", "deleted")
        result = await _resolve(cs, "delete now", adapter)
        assert result.outcome is Outcome.SUCCESS
        assert calls == [("delete", ["delete", "now"])]

    @pytest.mark.asyncio
    async def test_unique_prefix_dispatches(self, adapter):
        calls = []
        cs = _command_set(calls, "help", "deploy", "delete")
        await _resolve(cs, "dep", adapter)
        assert calls == [("deploy", ["dep"])]

    @pytest.mark.asyncio
    async def test_unknown_command(self, adapter):
        cs = _command_set([], "help", "deploy")
        result = await _resolve(cs, "frobnicate", adapter)
        assert result.failed
        assert result.kind is ErrorKind.UNKNOWN_COMMAND
        assert result.error.command == "frobnicate"

    @pytest.mark.asyncio
    async def test_empty_args_names_required_commands(self, adapter):
        cs = _command_set([], "deploy", "help", "apply")
        result = await _resolve(cs, "", adapter)
        assert result.kind is ErrorKind.MISSING_SUB_COMMAND
        assert result.error.required == ["help", "apply", "deploy"]
        assert str(result.error) == "required sub-command missing: help, apply, deploy"

    @pytest.mark.asyncio
    async def test_bad_quoting_is_bad_cli(self, adapter):
        calls = []
        cs = _command_set(calls, "deploy")
        result = await _resolve(cs, 'deploy "oops', adapter)
        assert result.kind is ErrorKind.BAD_CLI
        assert calls == []


# -------------------------------------------------------------------
# Sub-commands
# -------------------------------------------------------------------

class TestSubCommands:

    def _service(self, calls, seen):
        async def start(ctx, w, m):
            m.flags.add_argument("-f", action="store_true", help="force start")
            opts = m.parse()
            calls.append(("start", opts.f, list(m.args), ctx.value("quiet")))

        async def service(ctx, w, m):
            m.flags.add_argument("-q", action="store_true", help="quiet")
            opts = m.parse()
            seen.append(opts.q)
            return next_command(ctx.with_value("quiet", opts.q))

        subs = CommandSet(
            new_command_handler("start", "start the service", start),
            new_command_handler("stop", "stop the service", _recorder(calls, "stop")),
        )
        return CommandSet(new_command_handler("service", "manage the service", service, subs))

    @pytest.mark.asyncio
    async def test_defers_to_sub_command_with_context(self, adapter):
        calls, seen = [], []
        cs = self._service(calls, seen)
        result = await _resolve(cs, "service -q start -f web", adapter)
        assert result.outcome is Outcome.SUCCESS
        assert seen == [True]
        assert calls == [("start", True, ["web"], True)]

    @pytest.mark.asyncio
    async def test_sub_command_prefix_resolution(self, adapter):
        calls, seen = [], []
        cs = self._service(calls, seen)
        await _resolve(cs, "serv sto", adapter)
        assert calls == [("stop", ["sto"])]

    @pytest.mark.asyncio
    async def test_sub_command_missing(self, adapter):
        cs = self._service([], [])
        result = await _resolve(cs, "service -q", adapter)
        assert result.kind is ErrorKind.MISSING_SUB_COMMAND
        assert result.error.required == ["start", "stop"]

    @pytest.mark.asyncio
    async def test_sub_command_ambiguous(self, adapter):
        cs = self._service([], [])
        result = await _resolve(cs, "service st", adapter)
        assert result.kind is ErrorKind.AMBIGUOUS_COMMAND

    @pytest.mark.asyncio
    async def test_default_handler_parses_and_defers(self, adapter):
        calls = []
        subs = _command_set(calls, "list", "show")
        cs = CommandSet(new_command_handler("things", "things", subs=subs))
        await _resolve(cs, "things show one", adapter)
        assert calls == [("show", ["show", "one"])]

    @pytest.mark.asyncio
    async def test_help_on_parent_lists_sub_commands(self, adapter):
        cs = self._service([], [])
        result = await _resolve(cs, "service -help", adapter)
        assert result.outcome is Outcome.SKIP_REMAINING
        assert len(adapter.sent) == 1
        usage = adapter.sent[0].text
        assert "usage: service" in usage
        assert "sub-commands:" in usage
        assert "start  start the service" in usage
        assert "stop   stop the service" in usage

    @pytest.mark.asyncio
    async def test_help_on_sub_command_uses_its_own_flags(self, adapter):
        cs = self._service([], [])
        result = await _resolve(cs, "service start -help", adapter)
        assert result.outcome is Outcome.SKIP_REMAINING
        usage = adapter.sent[0].text
        assert "usage: start" in usage
        assert "force start" in usage

    @pytest.mark.asyncio
    async def test_defer_without_sub_commands_fails(self, adapter):
        async def lonely(ctx, w, m):
            return next_command(ctx)

        cs = CommandSet(new_command_handler("lonely", "", lonely))
        result = await _resolve(cs, "lonely x", adapter)
        assert result.kind is ErrorKind.MISSING_SUB_COMMAND

    @pytest.mark.asyncio
    async def test_defer_from_handler_not_built_by_new_command_handler(self, adapter):
        calls = []

        class Deploy:
            def describe(self):
                return "deploy", "deploy to an environment"

            def sub_commands(self):
                return _command_set(calls, "prod", "staging")

            async def command(self, ctx, w, m):
                m.parse()
                return next_command(ctx.with_value("who", "alice"))

        cs = CommandSet(Deploy())
        result = await _resolve(cs, "deploy prod now", adapter)
        assert result.outcome is Outcome.SUCCESS
        assert calls == [("prod", ["prod", "now"])]

    @pytest.mark.asyncio
    async def test_defer_from_handler_without_sub_commands_fails(self, adapter):
        class Orphan:
            def describe(self):
                return "orphan", ""

            async def command(self, ctx, w, m):
                return next_command(ctx)

        result = await _resolve(CommandSet(Orphan()), "orphan x", adapter)
        assert result.kind is ErrorKind.MISSING_SUB_COMMAND


# -------------------------------------------------------------------
# Invocation wrapper
# -------------------------------------------------------------------

class TestRunCommandHandler:

    @pytest.mark.asyncio
    async def test_panic_is_contained(self, adapter):
        async def explode(ctx, w, m):
            raise RuntimeError("kaboom")

        h = new_command_handler("explode", "", explode)
        result = await run_command_handler(
            Context.background(), h, ResponseWriter(adapter), Message(text="explode")
        )
        assert result.outcome is Outcome.SUCCESS

    @pytest.mark.asyncio
    async def test_hearsay_error_becomes_failure(self, adapter):
        async def refuse(ctx, w, m):
            raise HearsayError("not today")

        h = new_command_handler("refuse", "", refuse)
        result = await run_command_handler(
            Context.background(), h, ResponseWriter(adapter), Message(text="refuse")
        )
        assert result.failed
        assert str(result.error) == "not today"

    @pytest.mark.asyncio
    async def test_flag_error_becomes_failure(self, adapter):
        async def strict(ctx, w, m):
            m.parse()

        h = new_command_handler("strict", "", strict)
        result = await run_command_handler(
            Context.background(), h, ResponseWriter(adapter), Message(text="strict -z")
        )
        assert result.kind is ErrorKind.FLAGS

    @pytest.mark.asyncio
    async def test_usage_result_writes_usage(self, adapter):
        async def needs_args(ctx, w, m):
            m.flags.add_argument("-n", type=int, help="how many")
            m.parse()
            if not m.args:
                return CommandResult.usage()

        h = new_command_handler("needs", "needs an argument", needs_args)
        result = await run_command_handler(
            Context.background(), h, ResponseWriter(adapter), Message(text="needs")
        )
        assert result.outcome is Outcome.SKIP_REMAINING
        assert adapter.texts[0].startswith("needs - needs an argument")
        assert "how many" in adapter.texts[0]

    @pytest.mark.asyncio
    async def test_empty_message_has_no_arguments(self, adapter):
        h = new_command_handler("x", "", _recorder([], "x"))
        result = await run_command_handler(
            Context.background(), h, ResponseWriter(adapter), Message(text="")
        )
        assert result.kind is ErrorKind.NO_ARGUMENTS

    @pytest.mark.asyncio
    async def test_bad_cli(self, adapter):
        h = new_command_handler("x", "", _recorder([], "x"))
        result = await run_command_handler(
            Context.background(), h, ResponseWriter(adapter), Message(text="x 'open")
        )
        assert result.kind is ErrorKind.BAD_CLI

    @pytest.mark.asyncio
    async def test_fresh_flag_scope_per_invocation(self, adapter):
        async def counted(ctx, w, m):
            m.flags.add_argument("-n", type=int, default=0)
            m.parse()

        h = new_command_handler("counted", "", counted)
        w = ResponseWriter(adapter)
        for _ in range(2):
            result = await run_command_handler(Context.background(), h, w, Message(text="counted -n 1"))
            assert result.outcome is Outcome.SUCCESS


@pytest.mark.asyncio
async def test_command_usage_probes_flags():
    async def ping(ctx, w, m):
        m.flags.add_argument("-n", type=int, default=1, help="number of pongs")
        m.parse()
        await w.write("PONG", ctx)

    usage = await command_usage(new_command_handler("ping", "reply with PONG", ping), "ping")
    assert usage.startswith("ping - reply with PONG")
    assert "number of pongs" in usage

"""Tests for BatchMultiplexer chunking and result merging."""

import pytest

from bitrix24_mcp.client.batch import BatchMultiplexer
from bitrix24_mcp.models import BatchChunkFailure, Command, RemoteCallFailure

from conftest import ScriptedTransport, batch_envelope


def make_commands(count: int, prefix: str = "cmd") -> list[Command]:
    return [
        Command(key=f"{prefix}_{index}", method="crm.item.add", params={"fields": {"title": f"#{index}"}})
        for index in range(1, count + 1)
    ]


def echo_keys(commands):
    return batch_envelope({command.key: command.key.upper() for command in commands})


async def test_120_commands_run_as_50_50_20():
    transport = ScriptedTransport(batch_handler=echo_keys)
    multiplexer = BatchMultiplexer(transport, batch_size=50)

    result = await multiplexer.execute(make_commands(120))

    assert [len(chunk) for chunk in transport.batch_calls] == [50, 50, 20]
    assert list(result) == [f"cmd_{index}" for index in range(1, 121)]
    assert result["cmd_120"] == "CMD_120"


async def test_chunk_boundaries_keep_submission_order():
    multiplexer = BatchMultiplexer(ScriptedTransport(), batch_size=2)
    chunks = multiplexer.chunk(make_commands(5))
    assert [[command.key for command in chunk] for chunk in chunks] == [
        ["cmd_1", "cmd_2"],
        ["cmd_3", "cmd_4"],
        ["cmd_5"],
    ]


async def test_empty_input_makes_no_call():
    transport = ScriptedTransport()
    assert await BatchMultiplexer(transport).execute([]) == {}
    assert transport.batch_calls == []


async def test_failure_in_second_chunk_fails_the_whole_operation():
    def fail_second_chunk(commands):
        if commands[0].key == "cmd_51":
            return batch_envelope(
                {command.key: 1 for command in commands if command.key != "cmd_60"},
                {"cmd_60": {"error": "ERROR", "error_description": "Bad title"}},
            )
        return echo_keys(commands)

    transport = ScriptedTransport(batch_handler=fail_second_chunk)
    multiplexer = BatchMultiplexer(transport, batch_size=50)

    with pytest.raises(BatchChunkFailure) as exc_info:
        await multiplexer.execute(make_commands(120))

    assert exc_info.value.chunk_index == 1
    assert exc_info.value.failed_keys == ["cmd_60"]
    # The third chunk is never sent.
    assert len(transport.batch_calls) == 2


async def test_batch_level_error_envelope_raises_remote_call_failure():
    transport = ScriptedTransport(
        batch_handler=lambda commands: {"error": "QUERY_LIMIT_EXCEEDED", "error_description": "Too many"}
    )
    with pytest.raises(RemoteCallFailure, match="Too many"):
        await BatchMultiplexer(transport).execute(make_commands(3))


async def test_missing_keys_are_left_out():
    transport = ScriptedTransport(batch_handler=lambda commands: batch_envelope({"cmd_1": 10}))
    result = await BatchMultiplexer(transport).execute(make_commands(2))
    assert result == {"cmd_1": 10}


async def test_positional_result_list_is_accepted():
    transport = ScriptedTransport(batch_handler=lambda commands: batch_envelope([]))
    assert await BatchMultiplexer(transport).execute(make_commands(1)) == {}


async def test_duplicate_keys_are_rejected_before_any_call():
    transport = ScriptedTransport()
    commands = [Command(key="same", method="a"), Command(key="same", method="b")]
    with pytest.raises(ValueError, match="Duplicate"):
        await BatchMultiplexer(transport).execute(commands)
    assert transport.batch_calls == []


async def test_halt_flag_is_forwarded():
    transport = ScriptedTransport()
    await BatchMultiplexer(transport).execute(make_commands(1), halt_on_error=True)
    assert transport.halts == [1]


@pytest.mark.parametrize("batch_size", [0, -5, True, 2.5])
def test_invalid_batch_size(batch_size):
    with pytest.raises(ValueError):
        BatchMultiplexer(ScriptedTransport(), batch_size=batch_size)

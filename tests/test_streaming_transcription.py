import logging
import os
import threading
import time

import pytest

from roomscribe.services.room_store import RoomPhase, SummaryStatus

from conftest import FakeSummarizer


def test_submit_returns_before_transcription_finishes(engine):
    start = time.monotonic()
    result = engine.submit("RM1", 0, "BLOCK hello everyone")
    elapsed = time.monotonic() - start

    assert result.accepted is True
    assert elapsed < 1.0
    assert engine.service.get_status("RM1").in_flight_count == 1

    engine.provider.gate.set()
    engine.wait_idle("RM1")
    status = engine.service.get_status("RM1")
    assert status.in_flight_count == 0
    assert status.processed_count == 1


def test_end_to_end_portuguese_call(engine):
    engine.submit("RM1", 0, "Bom dia pessoal vamos começar")
    engine.submit("RM1", 1, "vamos começar a reunião de hoje")

    result = engine.service.finalize("RM1")

    assert result.exists is True
    assert result.transcript == "Bom dia pessoal vamos começar a reunião de hoje"
    status = engine.service.get_status("RM1")
    assert status.finalized is True
    assert status.in_flight_count == 0
    assert status.phase is RoomPhase.FINALIZED


def test_assembly_does_not_depend_on_arrival_order(make_engine):
    texts = {0: "alpha beta gamma delta", 1: "gamma delta epsilon zeta", 2: "epsilon zeta eta theta"}
    in_order = make_engine()
    shuffled = make_engine()

    for index in (0, 1, 2):
        in_order.submit("RM1", index, texts[index])
    for index in (2, 0, 1):
        shuffled.submit("RM1", index, texts[index])

    expected = "alpha beta gamma delta epsilon zeta eta theta"
    assert in_order.service.finalize("RM1").transcript == expected
    assert shuffled.service.finalize("RM1").transcript == expected


def test_failed_chunk_leaves_a_gap(engine):
    engine.submit("RM1", 0, "good morning everyone")
    engine.submit("RM1", 1, "FAIL")
    engine.submit("RM1", 2, "next item on the list")

    result = engine.service.finalize("RM1")

    assert result.transcript == "good morning everyone next item on the list"
    assert result.chunk_count == 2


def test_too_short_transcripts_are_dropped(engine):
    engine.submit("RM1", 0, "a")
    engine.submit("RM1", 1, "[Music]")
    engine.submit("RM1", 2, "real words here")

    assert engine.service.finalize("RM1").transcript == "real words here"


def test_submit_after_finalize_is_declined(engine):
    engine.submit("RM1", 0, "hello there")
    engine.service.finalize("RM1")
    calls_before = engine.provider.call_count

    result = engine.submit("RM1", 1, "anyone still here")

    assert result.accepted is False
    assert result.reason == "finalized"
    assert engine.service.get_status("RM1").in_flight_count == 0
    assert engine.provider.call_count == calls_before


@pytest.mark.parametrize("room_id, index", [("RM1", -1), ("../escape", 0), ("bad room", 0)])
def test_invalid_submissions_raise_before_touching_state(engine, room_id, index):
    with pytest.raises(ValueError):
        engine.submit(room_id, index, "hello there")
    assert engine.registry.list_room_ids() == []


def test_second_finalize_returns_cached_transcript_without_backend_calls(engine):
    engine.submit("RM1", 0, "first words of the call")
    first = engine.service.finalize("RM1")
    calls_after_first = engine.provider.call_count

    second = engine.service.finalize("RM1")

    assert second.transcript == first.transcript
    assert engine.provider.call_count == calls_after_first


def test_concurrent_finalize_calls_see_one_transcript(engine):
    for index, text in enumerate(["BLOCK one two three", "two three four five", "four five six seven"]):
        engine.submit("RM1", index, text)

    results = []
    threads = [
        threading.Thread(target=lambda: results.append(engine.service.finalize("RM1")))
        for _ in range(5)
    ]
    for thread in threads:
        thread.start()
    time.sleep(0.1)
    engine.provider.gate.set()
    for thread in threads:
        thread.join(10)

    transcripts = {result.transcript for result in results}
    assert len(results) == 5
    assert transcripts == {"one two three four five six seven"}


def test_finalize_is_bounded_when_a_chunk_hangs(make_engine):
    engine = make_engine(finalize_timeout=0.2)
    engine.submit("RM1", 0, "we made it this far")
    engine.wait_idle("RM1")
    engine.submit("RM1", 1, "BLOCK far and then some")

    start = time.monotonic()
    result = engine.service.finalize("RM1")

    assert time.monotonic() - start < 3
    assert result.drain_timed_out is True
    assert result.transcript == "we made it this far"

    # The stuck chunk finishes later; its text must not change the cached transcript
    engine.provider.gate.set()
    engine.wait_idle("RM1")
    state = engine.registry.get("RM1")
    assert state.get_chunk(1) is None
    assert engine.service.finalize("RM1").transcript == "we made it this far"


def test_context_hint_is_tail_of_previous_chunk(engine):
    engine.submit("RM1", 0, "the previous chunk said this")
    engine.wait_idle("RM1")
    engine.submit("RM1", 1, "said this and more")
    engine.service.finalize("RM1")

    hints = dict(engine.provider.calls)
    assert hints["the previous chunk said this"] is None
    assert hints["said this and more"] == "the previous chunk said this"


def test_no_overlap_chunks_are_not_stitched(engine):
    engine.submit("RM1", 0, "one two three")
    engine.submit("RM1", 1, "two three four", has_overlap=False)

    assert engine.service.finalize("RM1").transcript == "one two three two three four"


def test_partial_transcript_does_not_finalize(engine):
    engine.submit("RM1", 0, "Bom dia pessoal vamos começar")
    engine.submit("RM1", 1, "vamos começar a reunião de hoje")
    engine.wait_idle("RM1")

    partial = engine.service.get_partial_transcript("RM1")

    assert partial == "Bom dia pessoal vamos começar a reunião de hoje"
    assert engine.service.get_status("RM1").finalized is False
    assert engine.submit("RM1", 2, "ainda aceitando").accepted is True
    assert engine.service.get_partial_transcript("RM404") == ""


def test_finalize_unknown_room(engine):
    result = engine.service.finalize("RM404")
    assert result.exists is False
    assert result.transcript == ""
    assert result.to_dict()["success"] is False


def test_finalize_purges_staging_files(engine):
    engine.submit("RM1", 0, "hello there everyone")
    engine.service.finalize("RM1")
    assert not os.path.exists(engine.registry.room_dir("RM1"))


def test_staged_files_are_removed_after_each_chunk(engine):
    engine.submit("RM1", 0, "hello there everyone")
    engine.wait_idle("RM1")
    staged = engine.normalizer.paths[0]
    assert os.path.basename(staged).startswith("chunk_0_")
    assert staged.endswith(".webm")
    assert not os.path.exists(staged)


def test_clear_is_idempotent(engine):
    assert engine.service.clear("RM404") is False

    engine.submit("RM1", 0, "hello there")
    engine.service.finalize("RM1")
    assert engine.service.clear("RM1") is True
    assert engine.service.get_status("RM1").exists is False
    assert engine.service.clear("RM1") is False


def test_room_can_be_reused_after_clear(engine):
    engine.submit("RM1", 0, "first call")
    engine.service.finalize("RM1")
    engine.service.clear("RM1")

    assert engine.submit("RM1", 0, "second call").accepted is True
    assert engine.service.finalize("RM1").transcript == "second call"


def test_start_creates_room(engine):
    snapshot = engine.service.start("RM1", room_name="Weekly sync")
    assert snapshot.exists is True
    assert snapshot.phase is RoomPhase.CREATED
    assert engine.registry.get("RM1").room_name == "Weekly sync"


def test_finalize_with_summary_runs_summarizer_once(make_engine):
    summarizer = FakeSummarizer()
    engine = make_engine(summarizer=summarizer)
    engine.submit("RM1", 0, "we agreed to ship on friday")

    first = engine.service.finalize_with_summary("RM1", room_name="Release")
    second = engine.service.finalize_with_summary("RM1")

    assert first.summary_status is SummaryStatus.COMPLETED
    assert first.summary.general_summary == "Summary of 6 words"
    assert first.summary.room_name == "Release"
    assert second.summary == first.summary
    assert len(summarizer.calls) == 1
    assert summarizer.calls[0] == ("RM1", "Release", "we agreed to ship on friday")

    status, summary = engine.service.get_summary("RM1")
    assert status is SummaryStatus.COMPLETED
    assert summary is first.summary


def test_summary_failure_keeps_transcript(make_engine):
    summarizer = FakeSummarizer(fail=True)
    engine = make_engine(summarizer=summarizer)
    engine.submit("RM1", 0, "we agreed to ship on friday")

    result = engine.service.finalize_with_summary("RM1")

    assert result.transcript == "we agreed to ship on friday"
    assert result.summary is None
    assert result.summary_status is SummaryStatus.FAILED
    assert result.to_dict()["summary"] is None

    engine.service.finalize_with_summary("RM1")
    assert len(summarizer.calls) == 1


def test_finalize_without_summarizer_leaves_summary_untouched(engine):
    engine.submit("RM1", 0, "just the words")
    result = engine.service.finalize_with_summary("RM1")
    assert result.summary is None
    assert result.summary_status is SummaryStatus.NONE


def test_many_rooms_in_parallel(engine):
    rooms = ["red", "green", "blue", "amber", "violet"]
    directions = ["north", "east", "south", "west"]
    for room in rooms:
        for index, direction in enumerate(directions):
            engine.submit(f"RM-{room}", index, f"{room} {direction}")

    for room in rooms:
        transcript = engine.service.finalize(f"RM-{room}").transcript
        assert transcript == " ".join(f"{room} {direction}" for direction in directions)


def _wait_for_calls(provider, count: int, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while provider.call_count < count:
        assert time.monotonic() < deadline, "worker never picked up the chunk"
        time.sleep(0.01)


def test_queued_chunk_of_sealed_room_skips_the_backend(make_engine):
    engine = make_engine(finalize_timeout=0.2, workers=1)
    engine.submit("RM1", 0, "BLOCK first words here")
    _wait_for_calls(engine.provider, 1)
    engine.submit("RM1", 1, "queued words here")

    result = engine.service.finalize("RM1")
    assert result.drain_timed_out is True
    assert engine.registry.get("RM1").sealed is True

    engine.provider.gate.set()
    engine.wait_idle("RM1")

    assert [text for text, _hint in engine.provider.calls] == ["BLOCK first words here"]
    assert engine.service.get_status("RM1").in_flight_count == 0
    assert engine.service.finalize("RM1").transcript == ""


def test_shutdown_releases_cancelled_chunks(make_engine):
    engine = make_engine(workers=1)
    engine.submit("RM1", 0, "BLOCK still talking")
    _wait_for_calls(engine.provider, 1)
    engine.submit("RM1", 1, "never transcribed")
    engine.submit("RM1", 2, "never transcribed either")

    engine.dispatcher.shutdown(wait=False)

    # Only the chunk a worker is running remains in flight
    assert engine.service.get_status("RM1").in_flight_count == 1
    engine.provider.gate.set()
    engine.wait_idle("RM1")
    assert engine.provider.call_count == 1


def test_drain_timeout_warning_shows_subsecond_deadline(make_engine, caplog):
    engine = make_engine(finalize_timeout=0.2)
    engine.submit("RM1", 0, "BLOCK words that hang")

    with caplog.at_level(logging.WARNING, logger="roomscribe.finalize"):
        engine.service.finalize("RM1")

    assert any("after 0.2s" in record.getMessage() for record in caplog.records)

import threading

import pytest

from salarymask import session as session_module
from salarymask.errors import DocumentLoadError, PageRenderError, SessionStateError
from salarymask.session import RedactionSession, SessionState

from conftest import page_texts


def drag(session, x0, y0, x1, y1):
    session.pointer_down(x0, y0)
    session.pointer_move((x0 + x1) / 2, (y0 + y1) / 2)
    return session.pointer_up(x1, y1)


def test_new_session_is_ready(salary_pdf):
    s = RedactionSession(salary_pdf)
    assert s.state is SessionState.READY
    assert s.page_count == 2
    assert s.current_page == 1
    assert s.scale == 1.5
    assert s.regions == ()
    assert s.can_commit is False


def test_unreadable_document_closes_session():
    with pytest.raises(DocumentLoadError):
        RedactionSession(b"not a pdf")


def test_degenerate_drag_is_discarded(salary_pdf):
    s = RedactionSession(salary_pdf)
    assert drag(s, 100, 100, 105, 130) is None
    assert s.regions == ()
    assert s.state is SessionState.READY


def test_drag_is_normalised(salary_pdf):
    s = RedactionSession(salary_pdf)
    region = drag(s, 300, 200, 100, 150)
    assert (region.x, region.y, region.width, region.height) == (100, 150, 200, 50)
    assert region.page == 1
    assert s.can_commit is True


def test_pointer_move_reports_candidate_only_while_drawing(salary_pdf):
    s = RedactionSession(salary_pdf)
    assert s.pointer_move(10, 10) is None
    s.pointer_down(10, 10)
    assert s.state is SessionState.DRAWING
    rect = s.pointer_move(40, 30)
    assert (rect.width, rect.height) == (30, 20)


def test_regions_keep_their_drawing_scale(salary_pdf):
    s = RedactionSession(salary_pdf)
    first = drag(s, 10, 10, 100, 60)
    assert s.set_zoom(2.0) is True
    second = drag(s, 10, 10, 100, 60)
    assert first.scale == 1.5
    assert second.scale == 2.0
    assert [r.scale for r in s.regions] == [1.5, 2.0]


def test_zoom_bounds_and_steps(salary_pdf):
    s = RedactionSession(salary_pdf)
    assert s.set_zoom(3.5) is False
    assert s.set_zoom(0.25) is False
    assert s.scale == 1.5
    assert s.zoom_in() is True
    assert s.scale == 1.75
    s.set_zoom(3.0)
    assert s.zoom_in() is False
    assert s.scale == 3.0


def test_page_navigation(salary_pdf):
    s = RedactionSession(salary_pdf)
    assert s.previous_page() is False
    assert s.next_page() is True
    assert s.current_page == 2
    assert s.next_page() is False
    assert s.go_to_page(7) is False
    assert s.current_page == 2


def test_regions_are_tracked_per_page(salary_pdf):
    s = RedactionSession(salary_pdf)
    drag(s, 10, 10, 100, 60)
    s.next_page()
    drag(s, 20, 20, 120, 80)
    assert [i for i, _ in s.regions_on_page()] == [1]
    assert [i for i, _ in s.regions_on_page(1)] == [0]


def test_remove_and_clear_regions(salary_pdf):
    s = RedactionSession(salary_pdf)
    drag(s, 10, 10, 100, 60)
    drag(s, 10, 100, 100, 160)
    removed = s.remove_region(0)
    assert removed.y == 10
    assert len(s.regions) == 1
    with pytest.raises(IndexError):
        s.remove_region(5)
    assert s.clear_regions() == 1
    assert s.can_commit is False


def test_render_preview_matches_zoom(salary_pdf):
    s = RedactionSession(salary_pdf)
    preview = s.render_preview()
    assert preview.png.startswith(b"\x89PNG")
    assert preview.page == 1
    assert abs(preview.width - 595 * 1.5) <= 1
    assert abs(preview.height - 842 * 1.5) <= 1


def test_commit_requires_a_region(salary_pdf):
    s = RedactionSession(salary_pdf)
    with pytest.raises(SessionStateError):
        s.commit()
    assert s.state is SessionState.READY


def test_commit_flattens_and_closes(salary_pdf):
    s = RedactionSession(salary_pdf)
    drag(s, 90, 180, 810, 232.5)
    result = s.commit()
    assert result.was_masked is True
    assert result.masked_count == 1
    texts = page_texts(result.output_bytes)
    assert texts[0].strip() == ""
    assert texts[1] == page_texts(salary_pdf)[1]
    assert s.state is SessionState.CLOSED
    with pytest.raises(SessionStateError):
        s.go_to_page(1)
    with pytest.raises(SessionStateError):
        s.commit()


def test_failed_commit_returns_to_ready(salary_pdf, monkeypatch: pytest.MonkeyPatch):
    real = session_module.flatten_and_redact

    def broken(*args, **kwargs):
        raise PageRenderError("Could not render page 1 for redaction", page=1)

    s = RedactionSession(salary_pdf)
    drag(s, 90, 180, 810, 232.5)
    monkeypatch.setattr(session_module, "flatten_and_redact", broken)
    with pytest.raises(PageRenderError):
        s.commit()
    assert s.state is SessionState.READY
    assert len(s.regions) == 1

    monkeypatch.setattr(session_module, "flatten_and_redact", real)
    assert s.commit().was_masked is True


def test_unexpected_commit_failure_returns_to_ready(salary_pdf, monkeypatch: pytest.MonkeyPatch):
    def crashed(*args, **kwargs):
        raise RuntimeError("renderer crashed outside the pipeline")

    s = RedactionSession(salary_pdf)
    drag(s, 90, 180, 810, 232.5)
    monkeypatch.setattr(session_module, "flatten_and_redact", crashed)
    with pytest.raises(RuntimeError):
        s.commit()
    assert s.state is SessionState.READY
    assert len(s.regions) == 1
    s.cancel()
    assert s.state is SessionState.CANCELLED


def test_transitions_wait_for_a_running_commit(salary_pdf, monkeypatch: pytest.MonkeyPatch):
    real = session_module.flatten_and_redact
    started = threading.Event()
    resume = threading.Event()

    def slow(*args, **kwargs):
        started.set()
        assert resume.wait(5)
        return real(*args, **kwargs)

    s = RedactionSession(salary_pdf)
    drag(s, 90, 180, 810, 232.5)
    monkeypatch.setattr(session_module, "flatten_and_redact", slow)

    results = []
    committer = threading.Thread(target=lambda: results.append(s.commit()))
    committer.start()
    assert started.wait(5)

    errors = []

    def preview():
        try:
            s.render_preview()
        except SessionStateError as exc:
            errors.append(exc)

    viewer = threading.Thread(target=preview)
    viewer.start()
    viewer.join(0.2)
    assert viewer.is_alive()

    resume.set()
    committer.join(5)
    viewer.join(5)
    assert results[0].was_masked is True
    assert s.state is SessionState.CLOSED
    assert len(errors) == 1


def test_overlapping_commit_is_rejected(salary_pdf):
    s = RedactionSession(salary_pdf)
    drag(s, 90, 180, 810, 232.5)
    s._commit_guard.acquire()
    try:
        with pytest.raises(SessionStateError):
            s.commit()
    finally:
        s._commit_guard.release()
    assert s.state is SessionState.READY


def test_cancel_releases_the_session(salary_pdf):
    s = RedactionSession(salary_pdf)
    drag(s, 10, 10, 100, 60)
    s.cancel()
    assert s.state is SessionState.CANCELLED
    assert s.regions == ()
    s.cancel()
    with pytest.raises(SessionStateError):
        s.render_preview()


def test_context_manager_cancels_open_session(salary_pdf):
    with RedactionSession(salary_pdf) as s:
        drag(s, 10, 10, 100, 60)
    assert s.state is SessionState.CANCELLED

from __future__ import annotations

from unittest.mock import MagicMock, patch

from prf_ingest.services.progress import ProgressTracker, is_tty_enabled


def test_disabled_outside_tty():
    with patch("prf_ingest.services.progress.is_tty_enabled", return_value=False):
        tracker = ProgressTracker(3)
    assert tracker.enabled is False
    assert tracker.pbar is None
    tracker.advance("PRF-1")
    assert tracker.current == 1
    tracker.close()


def test_disabled_explicitly_even_on_tty():
    with patch("prf_ingest.services.progress.is_tty_enabled", return_value=True):
        tracker = ProgressTracker(3, enabled=False)
    assert tracker.pbar is None


def test_tty_uses_tqdm():
    bar = MagicMock()
    with patch("prf_ingest.services.progress.is_tty_enabled", return_value=True), patch(
        "prf_ingest.services.progress.tqdm", return_value=bar
    ) as mock_tqdm:
        with ProgressTracker(2, description="Importing budgets", unit="row") as tracker:
            tracker.advance("C-1", status="created")
            tracker.advance()
    assert mock_tqdm.call_args.kwargs["total"] == 2
    assert mock_tqdm.call_args.kwargs["unit"] == "row"
    bar.set_description.assert_any_call("Importing budgets (C-1)")
    bar.set_postfix.assert_called_once_with(status="created")
    assert bar.update.call_count == 2
    bar.close.assert_called_once()
    assert tracker.pbar is None


def test_is_tty_enabled_follows_stdout():
    with patch("sys.stdout") as stdout:
        stdout.isatty.return_value = True
        assert is_tty_enabled() is True
        stdout.isatty.return_value = False
        assert is_tty_enabled() is False

from __future__ import annotations

import queue

from MCPluginKit.PluginDownload.progress import ProgressEvent, ProgressRenderer, QueueProgress


def test_queue_progress_posts_events():
    events = queue.Queue()
    reporter = QueueProgress(events, 7, "LuckPerms")
    reporter.set_total(10)
    reporter.advance(0)
    reporter.advance(4)
    reporter.finish()

    posted = [events.get_nowait() for _ in range(events.qsize())]

    assert posted == [
        ProgressEvent(7, "start", description="LuckPerms"),
        ProgressEvent(7, "total", total=10),
        ProgressEvent(7, "advance", amount=4),
        ProgressEvent(7, "finish"),
    ]


def test_renderer_tracks_each_job():
    with ProgressRenderer(enabled=False) as renderer:
        sized = renderer.reporter("sized.jar")
        sized.set_total(8)
        sized.advance(8)
        sized.finish()
        unsized = renderer.reporter("unsized.jar")
        unsized.set_total(None)
        unsized.advance(5)
        unsized.finish()

    tasks = {task.description: task for task in renderer._progress.tasks}
    assert tasks["sized.jar"].completed == 8
    assert tasks["sized.jar"].total == 8
    assert tasks["unsized.jar"].total == 5
    assert tasks["unsized.jar"].completed == 5

"""Tests for the producer/single-consumer registration worker."""

from __future__ import annotations

import threading

import numpy as np
import pytest

from pcfuse.errors import InsufficientFrame
from pcfuse.system.session import RegistrationSession
from pcfuse.system.worker import RegistrationWorker

from conftest import make_cloud, make_keypoints


def test_frames_are_ingested_in_order(rng: np.random.Generator) -> None:
    cloud, kp = make_cloud(rng, 100), make_keypoints(rng, 20)
    sizes: list[int] = []
    worker = RegistrationWorker(RegistrationSession(), on_merged=lambda m: sizes.append(len(m)), max_pending=2)

    worker.start()
    for _ in range(4):
        worker.submit(cloud, kp)
    worker.stop(timeout=30.0)

    assert sizes == [100, 200, 300, 400]
    assert worker.session.frame_count == 4
    assert worker.errors == []


def test_failed_frame_does_not_stop_the_worker(rng: np.random.Generator) -> None:
    cloud = make_cloud(rng, 50)
    worker = RegistrationWorker(RegistrationSession())

    worker.start()
    worker.submit(cloud, make_keypoints(rng, 20))
    worker.submit(cloud, make_keypoints(rng, 1))
    worker.submit(cloud, make_keypoints(rng, 20))
    worker.stop(timeout=30.0)

    assert worker.session.frame_count == 2
    assert len(worker.errors) == 1
    assert isinstance(worker.errors[0], InsufficientFrame)


def test_submit_from_several_threads(rng: np.random.Generator) -> None:
    cloud, kp = make_cloud(rng, 10), make_keypoints(rng, 10)
    worker = RegistrationWorker(RegistrationSession(), max_pending=1)
    worker.start()

    threads = [threading.Thread(target=worker.submit, args=(cloud, kp)) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    worker.stop(timeout=30.0)

    assert worker.session.frame_count == 6
    assert len(worker.session.merged) == 60


def test_submit_requires_start(rng: np.random.Generator) -> None:
    worker = RegistrationWorker(RegistrationSession())
    with pytest.raises(RuntimeError):
        worker.submit(make_cloud(rng, 10), make_keypoints(rng, 10))


def test_stop_timeout_keeps_worker_started(rng: np.random.Generator) -> None:
    release = threading.Event()
    entered = threading.Event()

    def slow_consumer(merged) -> None:
        entered.set()
        release.wait(30.0)

    worker = RegistrationWorker(RegistrationSession(), on_merged=slow_consumer)
    worker.start()
    worker.submit(make_cloud(rng, 10), make_keypoints(rng, 10))
    assert entered.wait(30.0)

    assert worker.stop(timeout=0.05) is False
    with pytest.raises(RuntimeError):
        worker.start()

    release.set()
    assert worker.stop(timeout=30.0) is True
    assert worker.session.frame_count == 1

    # a stopped worker can be restarted with a single consumer
    worker.start()
    worker.submit(make_cloud(rng, 10), make_keypoints(rng, 10))
    assert worker.stop(timeout=30.0) is True
    assert worker.session.frame_count == 2

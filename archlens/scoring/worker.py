"""Isolated scorer worker and its request/response client.

The scorer runs on its own thread and owns its own model instance. The
analyzer and the feedback loop talk to it only through two queues, with
every request tagged by a correlation id. A worker that raises reports
the error and exits; the client respawns it after a fixed backoff.
"""

import copy
import queue
import threading
import time
import uuid
from typing import Any, Callable, Dict, Optional

from .model import default_model_factory
from ..exceptions import ScorerError, ScorerTimeoutError
from ..utils import logger


MESSAGE_SCORE = "score"
MESSAGE_RETRAIN = "retrain"
MESSAGE_SHUTDOWN = "shutdown"

RESPONSE_PREDICTIONS = "predictions"
RESPONSE_TRAINING_COMPLETE = "training_complete"
RESPONSE_ERROR = "error"


class ScorerWorker(threading.Thread):
    """Background thread that answers score and retrain messages."""

    def __init__(self, model_factory: Callable[[], Any],
                 requests: queue.Queue, responses: queue.Queue):
        super().__init__(daemon=True, name="archlens-scorer")
        self.model_factory = model_factory
        self.requests = requests
        self.responses = responses
        self.stop_event = threading.Event()

    def run(self):
        try:
            model = self.model_factory()
        except Exception as e:
            logger.error(f"Scorer worker failed to start: {e}")
            self._fail_pending(str(e))
            return

        while not self.stop_event.is_set():
            try:
                message = self.requests.get(timeout=0.1)
            except queue.Empty:
                continue

            if message['type'] == MESSAGE_SHUTDOWN:
                break

            try:
                if message['type'] == MESSAGE_SCORE:
                    reply = {'type': RESPONSE_PREDICTIONS, 'data': model.predict(message['data'])}
                elif message['type'] == MESSAGE_RETRAIN:
                    reply = {'type': RESPONSE_TRAINING_COMPLETE, 'data': model.train(message['data'])}
                else:
                    reply = {'type': RESPONSE_ERROR, 'data': f"Unknown message type: {message['type']}"}
            except Exception as e:
                logger.error(f"Scorer worker error: {e}")
                self.responses.put({'id': message['id'], 'type': RESPONSE_ERROR, 'data': str(e)})
                return

            reply['id'] = message['id']
            self.responses.put(reply)

    def _fail_pending(self, reason: str):
        while True:
            try:
                message = self.requests.get_nowait()
            except queue.Empty:
                return
            self.responses.put({'id': message.get('id'), 'type': RESPONSE_ERROR, 'data': reason})


class ScorerClient:
    """Owns one scorer worker and exchanges messages with it.

    ``request`` blocks until the matching response arrives or the timeout
    expires. Errors and timeouts raise ``ScorerError`` and schedule a
    respawn after ``respawn_backoff`` seconds.
    """

    def __init__(self, model_factory: Optional[Callable[[], Any]] = None,
                 timeout: float = 60.0, respawn_backoff: float = 5.0):
        self.model_factory = model_factory or default_model_factory()
        self.timeout = timeout
        self.respawn_backoff = respawn_backoff
        self.worker: Optional[ScorerWorker] = None
        self.respawn_timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._closed = False
        self._spawn()

    def _spawn(self):
        with self._lock:
            if self._closed:
                return
            self.requests: queue.Queue = queue.Queue()
            self.responses: queue.Queue = queue.Queue()
            self.worker = ScorerWorker(self.model_factory, self.requests, self.responses)
            self.worker.start()
            self.respawn_timer = None
            logger.debug("Scorer worker started")

    def _schedule_respawn(self):
        with self._lock:
            if self._closed or self.respawn_timer is not None:
                return
            if self.worker is not None:
                self.worker.stop_event.set()
            self.worker = None
            self.respawn_timer = threading.Timer(self.respawn_backoff, self._spawn)
            self.respawn_timer.daemon = True
            self.respawn_timer.start()
            logger.warning(f"Scorer worker will respawn in {self.respawn_backoff}s")

    @property
    def is_alive(self) -> bool:
        return self.worker is not None and self.worker.is_alive()

    def request(self, message_type: str, data: Dict[str, Any],
                timeout: Optional[float] = None) -> Dict[str, Any]:
        """Send one message and wait for its correlated response.

        Raises:
            ScorerTimeoutError: If no response arrives in time
            ScorerError: If the worker is unavailable or reports an error
        """
        timeout = self.timeout if timeout is None else timeout
        if not self.is_alive:
            self._schedule_respawn()
            raise ScorerError("Scorer worker is not running")

        message_id = str(uuid.uuid4())
        requests, responses = self.requests, self.responses
        requests.put({'id': message_id, 'type': message_type, 'data': copy.deepcopy(data)})

        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._schedule_respawn()
                raise ScorerTimeoutError(timeout)
            try:
                response = responses.get(timeout=min(remaining, 0.5))
            except queue.Empty:
                continue
            if response.get('id') != message_id:
                logger.debug(f"Dropping stale scorer response {response.get('id')}")
                continue
            if response['type'] == RESPONSE_ERROR:
                self._schedule_respawn()
                raise ScorerError(f"Scorer worker failed: {response['data']}")
            return response

    def score(self, payload: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """Send ``{components, patterns, issues}`` and return the predictions data."""
        response = self.request(MESSAGE_SCORE, payload, timeout)
        if response['type'] != RESPONSE_PREDICTIONS:
            raise ScorerError(f"Unexpected scorer response: {response['type']}")
        return response['data']

    def retrain(self, grouped_samples: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """Send training samples and return the learning metrics."""
        response = self.request(MESSAGE_RETRAIN, grouped_samples, timeout)
        if response['type'] != RESPONSE_TRAINING_COMPLETE:
            raise ScorerError(f"Unexpected scorer response: {response['type']}")
        return response['data']

    def cleanup(self):
        """Stop the worker and any pending respawn."""
        with self._lock:
            self._closed = True
            if self.respawn_timer is not None:
                self.respawn_timer.cancel()
                self.respawn_timer = None
            worker = self.worker
            self.worker = None
        if worker is not None:
            worker.stop_event.set()
            self.requests.put({'id': None, 'type': MESSAGE_SHUTDOWN, 'data': None})
            worker.join(timeout=2.0)
            logger.debug("Scorer worker stopped")

    def __enter__(self) -> 'ScorerClient':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()


def create_scorer(model_path: Optional[str] = None, feature_width: int = 128,
                  timeout: float = 60.0, respawn_backoff: float = 5.0) -> ScorerClient:
    return ScorerClient(
        model_factory=default_model_factory(model_path, feature_width),
        timeout=timeout,
        respawn_backoff=respawn_backoff,
    )


__all__ = ['ScorerWorker', 'ScorerClient', 'create_scorer']

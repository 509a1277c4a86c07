import logging
import time
from typing import Callable, Optional

from pydantic import ValidationError

from pvetool.client import ProxmoxClient, TaskFailedError, TaskStatusError, TaskTimeoutError
from pvetool.models import TaskStatus

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2


class TaskWaiter:
    def __init__(self, client: ProxmoxClient, poll_interval: float = DEFAULT_POLL_INTERVAL,
                 timeout: Optional[float] = None,
                 on_progress: Optional[Callable[[TaskStatus], None]] = None):
        """
        Poll node tasks until they stop.

        :param client: ProxmoxClient instance
        :param poll_interval: Fixed delay between polls in seconds
        :param timeout: Give up after this many seconds; None waits forever
        :param on_progress: Called with the status after every 'running' poll
        """
        self.client = client
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.on_progress = on_progress

    def status(self, node: str, upid: str) -> TaskStatus:
        data = self.client.get(f'/nodes/{node}/tasks/{upid}/status')
        try:
            return TaskStatus.model_validate(data)
        except ValidationError:
            raise TaskStatusError(upid, None)

    def wait(self, node: str, upid: str) -> TaskStatus:
        """
        Block until the task stops.

        :param node: Node that issued the task
        :param upid: Unique Process ID
        :return: Final TaskStatus when the exit status is 'OK'
        """
        deadline = None
        if self.timeout is not None:
            deadline = time.monotonic() + self.timeout
        while True:
            status = self.status(node, upid)
            if status.status == 'stopped':
                if status.exitstatus == 'OK':
                    logger.info(f"Task {upid} completed successfully")
                    return status
                logger.error(f"Task {upid} failed with exitstatus: {status.exitstatus}")
                raise TaskFailedError(upid, status.exitstatus)
            if status.status != 'running':
                raise TaskStatusError(upid, status.status)
            if deadline is not None and time.monotonic() >= deadline:
                raise TaskTimeoutError(f"Task {upid} timed out after {self.timeout} seconds")
            logger.debug(f"Task {upid} still running...")
            if self.on_progress is not None:
                self.on_progress(status)
            time.sleep(self.poll_interval)

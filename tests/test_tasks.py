import itertools

import pytest
from unittest.mock import Mock, patch

from pvetool.client import ProxmoxClient, TaskFailedError, TaskStatusError, TaskTimeoutError
from pvetool.tasks import TaskWaiter

UPID = 'UPID:pve1:0000ABCD:0001:65F0:qmsnapshot:100:root@pam!cli:'


def make_client(*statuses):
    client = Mock(spec=ProxmoxClient)
    client.get.side_effect = list(statuses)
    return client


class TestTaskWaiter:

    @patch('time.sleep')
    def test_success(self, mock_sleep):
        client = make_client({'status': 'running'}, {'status': 'stopped', 'exitstatus': 'OK'})
        progress = Mock()

        status = TaskWaiter(client, on_progress=progress).wait('pve1', UPID)

        assert status.exitstatus == 'OK'
        client.get.assert_called_with(f'/nodes/pve1/tasks/{UPID}/status')
        mock_sleep.assert_called_once_with(2)
        assert progress.call_count == 1

    @patch('time.sleep')
    def test_failure_carries_exit_text(self, mock_sleep):
        client = make_client(
            {'status': 'running'},
            {'status': 'running'},
            {'status': 'stopped', 'exitstatus': 'job errored'},
        )

        with pytest.raises(TaskFailedError, match="job errored") as exc_info:
            TaskWaiter(client).wait('pve1', UPID)

        assert exc_info.value.exitstatus == 'job errored'
        assert exc_info.value.upid == UPID
        assert mock_sleep.call_count == 2

    @patch('time.sleep')
    def test_missing_exitstatus_is_failure(self, mock_sleep):
        client = make_client({'status': 'stopped'})

        with pytest.raises(TaskFailedError) as exc_info:
            TaskWaiter(client).wait('pve1', UPID)

        assert exc_info.value.exitstatus is None
        mock_sleep.assert_not_called()

    @pytest.mark.parametrize('state', ['queued', 'error', ''])
    @patch('time.sleep')
    def test_unknown_status(self, mock_sleep, state):
        client = make_client({'status': state})

        with pytest.raises(TaskStatusError) as exc_info:
            TaskWaiter(client).wait('pve1', UPID)

        assert exc_info.value.status == state

    @patch('time.sleep')
    def test_status_document_without_status(self, mock_sleep):
        client = make_client({'exitstatus': 'OK'})

        with pytest.raises(TaskStatusError):
            TaskWaiter(client).wait('pve1', UPID)

    @patch('time.sleep')
    def test_custom_interval(self, mock_sleep):
        client = make_client({'status': 'running'}, {'status': 'stopped', 'exitstatus': 'OK'})

        TaskWaiter(client, poll_interval=0.5).wait('pve1', UPID)

        mock_sleep.assert_called_once_with(0.5)

    @patch('time.monotonic')
    @patch('time.sleep')
    def test_timeout(self, mock_sleep, mock_monotonic):
        client = Mock(spec=ProxmoxClient)
        client.get.return_value = {'status': 'running'}
        mock_monotonic.side_effect = itertools.chain([0, 1, 2], itertools.repeat(11))

        with pytest.raises(TaskTimeoutError, match="timed out after 10 seconds"):
            TaskWaiter(client, timeout=10).wait('pve1', UPID)

        assert client.get.call_count == 3
        assert mock_sleep.call_count == 2

    @patch('time.sleep')
    def test_no_timeout_by_default(self, mock_sleep):
        statuses = [{'status': 'running'}] * 50 + [{'status': 'stopped', 'exitstatus': 'OK'}]
        client = make_client(*statuses)

        TaskWaiter(client).wait('pve1', UPID)

        assert mock_sleep.call_count == 50

"""
Result Publisher

Sends each finished test to the shop's collection server as a
multipart/form-data POST.  The record is a flat set of named form fields;
the two captured logs are attached as files.
"""

from dataclasses import dataclass
from typing import Dict, Tuple, Union

import requests

from drivewipe.exceptions import PublishError
from drivewipe.logger import get_module_logger
from drivewipe.protocol.records import DeviceInfo
from .results import TestResult

logger = get_module_logger(__name__)


@dataclass(frozen=True)
class TextField:
    value: str


@dataclass(frozen=True)
class FileField:
    filename: str
    content: str


FormField = Union[TextField, FileField]


@dataclass(frozen=True)
class TestReport:
    """
    One test result as published to the collection server.

    Attributes:
        device:      Device under test.
        name:        Test description, e.g. ``Destructive badblocks``.
        code:        Two-letter test code.
        count:       Sequence string, e.g. ``3/6`` or ``1/?``.
        run_id:      Identifier shared by all tests of one run.
        result:      The test's result.
    """
    __test__ = False

    device: DeviceInfo
    name: str
    code: str
    count: str
    run_id: str
    result: TestResult

    def to_form_fields(self) -> Dict[str, FormField]:
        return {
            'device': TextField(self.device.path),
            'device_model': TextField(self.device.model),
            'device_serial': TextField(self.device.serial),
            'name': TextField(self.name),
            'code': TextField(self.code),
            'count': TextField(self.count),
            'result': TextField('true' if self.result.passed else 'false'),
            'runid': TextField(self.run_id),
            'status': TextField(str(self.result.exit_status)),
            'start': TextField(self.result.started_at.isoformat()),
            'finish': TextField(self.result.finished_at.isoformat()),
            'log_out': FileField('log_out.txt', self.result.out),
            'log_err': FileField('log_err.txt', self.result.err),
        }


class ResultPublisher:
    """Interface: deliver one :class:`TestReport`."""

    def publish(self, report: TestReport) -> None:
        raise NotImplementedError


class NullResultPublisher(ResultPublisher):
    """Publisher used when no upload URL is configured."""

    def publish(self, report: TestReport) -> None:
        logger.debug(f"Upload disabled; not publishing {report.code} {report.count}")


class HttpResultPublisher(ResultPublisher):
    """
    POST reports to *url* with ``requests``.

    Example:
        >>> publisher = HttpResultPublisher('http://build.shop.lan/scripts/wipe.cgi')
        >>> publisher.publish(report)
    """

    def __init__(self, url: str, timeout: float = 30):
        self.url = url
        self.timeout = timeout

    @staticmethod
    def split_fields(fields: Dict[str, FormField]) -> Tuple[Dict[str, str], Dict[str, tuple]]:
        """Split form fields into the ``data`` and ``files`` arguments of requests."""
        data: Dict[str, str] = {}
        files: Dict[str, tuple] = {}
        for key, field in fields.items():
            if isinstance(field, TextField):
                data[key] = field.value
            elif isinstance(field, FileField):
                files[key] = (field.filename, field.content.encode('utf-8'), 'text/plain')
            else:
                raise TypeError(f"Unsupported form field for {key}: {field!r}")
        return data, files

    def publish(self, report: TestReport) -> None:
        """
        Raises:
            PublishError: If the server cannot be reached or rejects the post.
        """
        data, files = self.split_fields(report.to_form_fields())
        try:
            response = requests.post(self.url, data=data, files=files, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise PublishError(f"Upload of {report.code} {report.count} to {self.url} failed: {e}") from e
        logger.info(f"Published {report.code} {report.count} ({response.status_code})")


def create_publisher(config) -> ResultPublisher:
    if config.get('upload_url'):
        return HttpResultPublisher(config['upload_url'], timeout=config['upload_timeout'])
    return NullResultPublisher()

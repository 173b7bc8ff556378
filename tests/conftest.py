import pytest

from feed_tools.config import Settings


@pytest.fixture
def settings(tmp_path):
    s = Settings(base_dir=tmp_path)
    s.ready_interval = 0
    s.check_attempts = 2
    s.ready_attempts = 2
    s.archive_timeout = 5
    s.manifest_timeout = 5
    s.file_timeout = 5
    return s

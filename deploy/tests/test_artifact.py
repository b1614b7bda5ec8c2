from __future__ import annotations

import pytest
from pytest_mock import MockerFixture
import sure

from conftest import write_runner_archive
from fleettools.artifact import ensure_artifact, is_valid_archive
from fleettools.errors import ArtifactError
from util.io import download_uri as real_download_uri

@pytest.mark.parametrize('name', ['runner.zip', 'runner.tar.gz'])
def test_valid_archives(tmp_path, name):
    is_valid_archive(write_runner_archive(tmp_path / name)).should.be.true

def test_missing_file_is_not_valid(tmp_path):
    is_valid_archive(tmp_path / 'nope.zip').should.be.false

def test_garbage_is_not_valid(tmp_path):
    junk = tmp_path / 'runner.zip'
    junk.write_bytes(b'<html>rate limited</html>')
    is_valid_archive(junk).should.be.false

@pytest.mark.parametrize('name', ['runner.zip', 'runner.tar.gz'])
def test_truncated_archive_is_not_valid(tmp_path, name):
    archive = write_runner_archive(tmp_path / name, {'bin/big': 'x' * 200000})
    data = archive.read_bytes()
    archive.write_bytes(data[:len(data) // 2])
    is_valid_archive(archive).should.be.false

def test_cached_valid_artifact_is_not_downloaded_again(mocker: MockerFixture, tmp_path):
    target = write_runner_archive(tmp_path / 'actions-runner.zip')
    download = mocker.patch('fleettools.artifact.download_uri')

    ensure_artifact(target, 'https://example.com/actions-runner.zip')
    ensure_artifact(target, 'https://example.com/actions-runner.zip')

    download.assert_not_called()
    target.exists().should.be.true

def test_missing_artifact_is_downloaded(tmp_path):
    source = write_runner_archive(tmp_path / 'upstream' / 'actions-runner.tar.gz')
    target = tmp_path / 'runners' / 'actions-runner.tar.gz'

    ensure_artifact(target, source.as_uri())

    target.read_bytes().should.equal(source.read_bytes())

def test_corrupt_cached_artifact_is_replaced(mocker: MockerFixture, tmp_path):
    source = write_runner_archive(tmp_path / 'upstream' / 'actions-runner.zip')
    target = tmp_path / 'actions-runner.zip'
    target.write_bytes(b'partial download')
    download = mocker.patch('fleettools.artifact.download_uri', wraps=real_download_uri)

    ensure_artifact(target, source.as_uri())

    download.assert_called_once_with(source.as_uri(), target)
    is_valid_archive(target).should.be.true

def test_invalid_download_is_deleted_and_fatal(tmp_path):
    source = tmp_path / 'upstream' / 'actions-runner.zip'
    source.parent.mkdir()
    source.write_bytes(b'not an archive')
    target = tmp_path / 'actions-runner.zip'

    with pytest.raises(ArtifactError):
        ensure_artifact(target, source.as_uri())

    target.exists().should.be.false

def test_failed_download_is_fatal(tmp_path):
    target = tmp_path / 'actions-runner.zip'

    with pytest.raises(ArtifactError):
        ensure_artifact(target, (tmp_path / 'does-not-exist.zip').as_uri())

    target.exists().should.be.false

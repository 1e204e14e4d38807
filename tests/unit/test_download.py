import threading
from unittest.mock import MagicMock

import pytest

from crowdsync.download import BuildOrchestrator, BuildState, DownloadOptions, build_request
from crowdsync.errors import (
    BuildCancelledError,
    BuildFailedError,
    BuildTimeoutError,
    ConfigurationError,
    RemoteApiError,
)
from crowdsync.events import EventCollector, EventKind
from crowdsync.models import BuildJob


class TestBuildRequest:
    def test_minimal_request(self):
        assert build_request(DownloadOptions(), organization=False) == {}

    def test_filters(self):
        options = DownloadOptions(skip_untranslated_strings=True)
        assert build_request(options, organization=False, language_id="uk", branch_id=3) == {
            "branchId": 3,
            "targetLanguageIds": ["uk"],
            "skipUntranslatedStrings": True,
        }

    def test_approved_only_for_regular_projects(self):
        request = build_request(DownloadOptions(export_only_approved=True), organization=False)
        assert request == {"exportApprovedOnly": True}

    def test_approval_threshold_for_organization_projects(self):
        request = build_request(DownloadOptions(export_only_approved=True), organization=True)
        assert request == {"exportWithMinApprovalsCount": 1}

    @pytest.mark.parametrize("organization", [True, False])
    def test_filters_never_both_set(self, organization):
        request = build_request(DownloadOptions(export_only_approved=True), organization=organization)
        assert not ("exportApprovedOnly" in request and "exportWithMinApprovalsCount" in request)

    def test_conflicting_skip_options(self):
        options = DownloadOptions(skip_untranslated_strings=True, skip_untranslated_files=True)
        with pytest.raises(ConfigurationError):
            options.validate()
        DownloadOptions(skip_untranslated_files=True).validate()


def scripted_client(*jobs):
    client = MagicMock()
    client.trigger_build.return_value = jobs[0]
    client.poll_build.side_effect = list(jobs[1:])
    return client


class TestBuildOrchestrator:
    def test_progress_reported_on_change_then_100(self):
        client = scripted_client(
            BuildJob(1, "created", 0),
            BuildJob(1, "inProgress", 40),
            BuildJob(1, "inProgress", 40),
            BuildJob(1, "inProgress", 90),
            BuildJob(1, "Finished", 95),
        )
        events = EventCollector()
        orchestrator = BuildOrchestrator(client, events, poll_interval=0)

        job = orchestrator.build({})

        assert job.is_finished
        assert events.progress_values() == [40, 90, 100]
        assert orchestrator.state is BuildState.FINISHED
        assert client.poll_build.call_count == 4

    def test_already_finished_build_is_not_polled(self):
        client = scripted_client(BuildJob(1, "finished", 100))
        events = EventCollector()

        BuildOrchestrator(client, events, poll_interval=0).build({})

        client.poll_build.assert_not_called()
        assert events.progress_values() == [100]
        assert events.events[0].kind is EventKind.BUILD_STARTED

    def test_failed_status_aborts(self):
        client = scripted_client(BuildJob(1, "created"), BuildJob(1, "failed", 10))
        orchestrator = BuildOrchestrator(client, poll_interval=0)

        with pytest.raises(BuildFailedError):
            orchestrator.build({})
        assert orchestrator.state is BuildState.ERRORED

    def test_deadline(self):
        ticks = iter([0.0, 5.0, 11.0])
        client = MagicMock()
        client.trigger_build.return_value = BuildJob(1, "inProgress", 10)
        client.poll_build.return_value = BuildJob(1, "inProgress", 10)
        orchestrator = BuildOrchestrator(client, poll_interval=0, timeout=10, clock=lambda: next(ticks))

        with pytest.raises(BuildTimeoutError):
            orchestrator.build({})
        assert client.poll_build.call_count == 1

    def test_cancellation_between_polls(self):
        cancel = threading.Event()
        cancel.set()
        client = MagicMock()
        client.trigger_build.return_value = BuildJob(1, "inProgress", 10)
        orchestrator = BuildOrchestrator(client, poll_interval=0.01, cancel_event=cancel)

        with pytest.raises(BuildCancelledError):
            orchestrator.build({})
        client.poll_build.assert_not_called()

    def test_remote_error_during_poll_is_not_retried(self):
        client = MagicMock()
        client.trigger_build.return_value = BuildJob(1, "created")
        client.poll_build.side_effect = RemoteApiError(500, "boom")
        orchestrator = BuildOrchestrator(client, poll_interval=0)

        with pytest.raises(RemoteApiError):
            orchestrator.build({})
        client.trigger_build.assert_called_once()
        assert orchestrator.state is BuildState.ERRORED

    def test_download_extracts_archive(self, tmp_path, make_zip):
        archive = make_zip({"uk/first.po": "x"})
        client = MagicMock()
        client.resolve_download_url.return_value = "https://downloads.example.com/a.zip"

        def fake_download(url, path):
            with open(archive, "rb") as source, open(path, "wb") as target:
                target.write(source.read())
        client.download_to_file.side_effect = fake_download
        orchestrator = BuildOrchestrator(client)

        extracted = orchestrator.download(1, str(tmp_path / "t.zip"), str(tmp_path / "out"))

        assert [p.replace("\\", "/").rsplit("/out/", 1)[1] for p in extracted] == ["uk/first.po"]
        assert orchestrator.state is BuildState.DOWNLOADED

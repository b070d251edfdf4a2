"""Integration tests for the claim, dispatch and complete cycle"""

import pytest
from unittest.mock import AsyncMock, patch

from backend.app.models import Business, SiteBusiness
from backend.app.models.background_job import BackgroundJobStatus, JobType
from backend.app.services.background_processor import BackgroundProcessor, task_handler
from backend.app.services.processors import (
    GooglePlacesSearchProcessor,
    AssociateSiteBusinessesProcessor,
    SyncBusinessesToSearchProcessor,
)

pytestmark = pytest.mark.integration


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("backend.app.services.places_client.asyncio.sleep", new_callable=AsyncMock):
        yield


@pytest.fixture
def worker(
    job_repository, business_repository, site_repository, city_repository, places_client, search_client
):
    """Processor wired to the test database and fake external services"""
    processor = BackgroundProcessor(job_repository=job_repository, worker_id="pipeline-worker", poll_interval=0)

    @task_handler(JobType.GOOGLE_PLACES_SEARCH.value, processor=processor)
    async def handle_search(job):
        await GooglePlacesSearchProcessor(
            job_repository=job_repository,
            business_repository=business_repository,
            city_repository=city_repository,
            places_client=places_client
        ).process(job)

    @task_handler(JobType.ASSOCIATE_SITE_BUSINESSES.value, processor=processor)
    async def handle_associate(job):
        await AssociateSiteBusinessesProcessor(
            job_repository=job_repository,
            site_repository=site_repository
        ).process(job)

    @task_handler(JobType.SYNC_BUSINESSES_TO_SEARCH.value, processor=processor)
    async def handle_sync(job):
        await SyncBusinessesToSearchProcessor(
            job_repository=job_repository,
            business_repository=business_repository,
            site_repository=site_repository,
            search_client=search_client
        ).process(job)

    return processor


class TestWorkerPipeline:
    """End-to-end job runs through the background processor"""

    @pytest.mark.asyncio
    async def test_ingest_associate_and_sync(
        self, worker, job_repository, seeder, places_api, place_factory, search_api, count_rows
    ):
        illinois = await seeder.state()
        springfield = await seeder.city(illinois, "Springfield")
        plumbers = await seeder.category("Plumbers")
        site = await seeder.site("springfield-plumbers.example.com")
        await seeder.configure_site(site, categories=[plumbers], cities=[springfield])

        for place_id in ("p1", "p2", "p3"):
            places_api.add_place(place_factory(place_id, name=f"Plumber {place_id}"))
        places_api.set_search_results(["p1", "p2"], ["p3"])

        search_job = await job_repository.create_job(
            JobType.GOOGLE_PLACES_SEARCH.value,
            {"queryText": "plumbers in Springfield, IL", "categoryId": str(plumbers.id)}
        )
        assert await worker.run_once("pipeline-worker") is True

        associate_job = await job_repository.create_job(
            JobType.ASSOCIATE_SITE_BUSINESSES.value, {"siteId": str(site.id)}
        )
        assert await worker.run_once("pipeline-worker") is True

        sync_job = await job_repository.create_job(
            JobType.SYNC_BUSINESSES_TO_SEARCH.value, {"siteId": str(site.id)}
        )
        assert await worker.run_once("pipeline-worker") is True
        assert await worker.run_once("pipeline-worker") is False

        for job in (search_job, associate_job, sync_job):
            stored = await job_repository.get_job_by_id(job.id)
            assert stored.status == BackgroundJobStatus.COMPLETED
            assert stored.progress == 100
            assert stored.locked_by is None
            assert stored.attempt_count == 1
            assert stored.finished_at is not None

        assert await count_rows(Business, Business.city_id == springfield.id) == 3
        assert await count_rows(SiteBusiness, SiteBusiness.site_id == site.id) == 3
        assert len(search_api.documents) == 3
        assert all(doc["site_ids"] == [str(site.id)] for doc in search_api.documents.values())

    @pytest.mark.asyncio
    async def test_failed_job_records_error_and_can_be_requeued(
        self, worker, job_repository, seeder, places_api
    ):
        plumbers = await seeder.category("Plumbers")
        places_api.search_status = 403

        job = await job_repository.create_job(
            JobType.GOOGLE_PLACES_SEARCH.value,
            {"queryText": "plumbers in Springfield, IL", "categoryId": str(plumbers.id)}
        )
        await worker.run_once("pipeline-worker")

        stored = await job_repository.get_job_by_id(job.id)
        assert stored.status == BackgroundJobStatus.FAILED
        assert "403" in stored.error
        assert stored.locked_by is None
        assert stored.finished_at is None

        places_api.search_status = 200
        places_api.set_search_results([])
        assert await job_repository.requeue_failed_job(job.id) is True
        await worker.run_once("pipeline-worker")

        stored = await job_repository.get_job_by_id(job.id)
        assert stored.status == BackgroundJobStatus.COMPLETED
        assert stored.attempt_count == 2
        assert stored.error is None
        assert stored.meta == {"note": "No places found for query"}

    @pytest.mark.asyncio
    async def test_unknown_job_type_is_failed(self, worker, job_repository):
        job = await job_repository.create_job("send_newsletter", {})

        await worker.run_once("pipeline-worker")

        stored = await job_repository.get_job_by_id(job.id)
        assert stored.status == BackgroundJobStatus.FAILED
        assert stored.error == "No handler registered for job type: send_newsletter"

    @pytest.mark.asyncio
    async def test_invalid_payload_is_failed(self, worker, job_repository):
        job = await job_repository.create_job(JobType.ASSOCIATE_SITE_BUSINESSES.value, {"siteId": "nope"})

        await worker.run_once("pipeline-worker")

        stored = await job_repository.get_job_by_id(job.id)
        assert stored.status == BackgroundJobStatus.FAILED
        assert stored.error.startswith("Invalid payload for associate_site_businesses")

class TestWorkerScript:
    """The worker entry point registers a handler for every job type"""

    def test_all_job_types_registered(self):
        from backend.app.services.background_processor import background_processor
        import scripts.worker  # noqa: F401

        assert set(background_processor.task_handlers) == {job_type.value for job_type in JobType}

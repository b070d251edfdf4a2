"""Unit tests for the site association processor"""

import pytest
from unittest.mock import patch
from sqlalchemy.exc import OperationalError

from backend.app.models import SiteBusiness
from backend.app.models.background_job import BackgroundJobStatus, JobType
from backend.app.services.processors.associate_site_businesses import AssociateSiteBusinessesProcessor


@pytest.fixture
def processor(recording_job_repository, site_repository):
    return AssociateSiteBusinessesProcessor(
        job_repository=recording_job_repository,
        site_repository=site_repository,
    )


@pytest.fixture
async def directory(seeder):
    """Two cities, two categories and a handful of businesses spread across them"""
    illinois = await seeder.state()
    springfield = await seeder.city(illinois, "Springfield")
    peoria = await seeder.city(illinois, "Peoria")
    plumbers = await seeder.category("Plumbers")
    roofers = await seeder.category("Roofers")

    businesses = {}
    for key, city, category in [
        ("springfield_plumber", springfield, plumbers),
        ("springfield_roofer", springfield, roofers),
        ("peoria_plumber", peoria, plumbers),
        ("no_city_plumber", None, plumbers),
    ]:
        business = await seeder.business(name=key, city_id=city.id if city else None)
        await seeder.link_category(business, category)
        businesses[key] = business

    return {
        "springfield": springfield,
        "peoria": peoria,
        "plumbers": plumbers,
        "roofers": roofers,
        "businesses": businesses,
    }


class TestAssociateSiteBusinessesProcessor:
    """Test cases for AssociateSiteBusinessesProcessor"""

    @pytest.mark.asyncio
    async def test_lists_businesses_matching_city_and_category(
        self, processor, seeder, directory, claim_job, count_rows, recording_job_repository
    ):
        site = await seeder.site()
        await seeder.configure_site(site, categories=[directory["plumbers"]], cities=[directory["springfield"]])

        job = await claim_job(JobType.ASSOCIATE_SITE_BUSINESSES.value, {"siteId": str(site.id)})
        meta = await processor.process(job)

        springfield_plumber = directory["businesses"]["springfield_plumber"]
        assert meta.total_businesses == 1
        assert meta.associated_businesses == 1
        assert await count_rows(SiteBusiness, SiteBusiness.site_id == site.id) == 1
        assert await count_rows(
            SiteBusiness,
            SiteBusiness.site_id == site.id,
            SiteBusiness.business_id == springfield_plumber.id
        ) == 1

        stored = await recording_job_repository.get_job_by_id(job.id)
        assert stored.status == BackgroundJobStatus.COMPLETED
        assert stored.meta["associated_businesses"] == 1

    @pytest.mark.asyncio
    async def test_multiple_categories_and_cities(self, processor, seeder, directory, claim_job, count_rows):
        site = await seeder.site()
        await seeder.configure_site(
            site,
            categories=[directory["plumbers"], directory["roofers"]],
            cities=[directory["springfield"], directory["peoria"]]
        )

        job = await claim_job(JobType.ASSOCIATE_SITE_BUSINESSES.value, {"siteId": str(site.id)})
        meta = await processor.process(job)

        assert meta.associated_businesses == 3
        assert await count_rows(SiteBusiness, SiteBusiness.site_id == site.id) == 3

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent_and_keeps_claims(
        self, processor, seeder, directory, claim_job, count_rows
    ):
        from uuid import uuid4

        site = await seeder.site()
        await seeder.configure_site(site, categories=[directory["plumbers"]], cities=[directory["springfield"]])
        owner = uuid4()
        await seeder.list_on_site(site, directory["businesses"]["springfield_plumber"], claimed_by=owner)

        for _ in range(2):
            job = await claim_job(JobType.ASSOCIATE_SITE_BUSINESSES.value, {"siteId": str(site.id)})
            await processor.process(job)

        assert await count_rows(SiteBusiness, SiteBusiness.site_id == site.id) == 1
        assert await count_rows(SiteBusiness, SiteBusiness.claimed_by == owner) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("configure,note", [
        ("nothing", "No categories configured for site"),
        ("categories_only", "No cities configured for site"),
        ("empty_category", "No businesses found in site categories"),
        ("no_overlap", "No matching businesses found"),
    ])
    async def test_nothing_to_do_notes(
        self, processor, seeder, directory, claim_job, recording_job_repository, count_rows, configure, note
    ):
        site = await seeder.site()
        if configure == "categories_only":
            await seeder.configure_site(site, categories=[directory["plumbers"]])
        elif configure == "empty_category":
            electricians = await seeder.category("Electricians")
            await seeder.configure_site(site, categories=[electricians], cities=[directory["springfield"]])
        elif configure == "no_overlap":
            ohio = await seeder.state("Ohio", "OH")
            dayton = await seeder.city(ohio, "Dayton")
            await seeder.configure_site(site, categories=[directory["plumbers"]], cities=[dayton])

        job = await claim_job(JobType.ASSOCIATE_SITE_BUSINESSES.value, {"siteId": str(site.id)})
        await processor.process(job)

        stored = await recording_job_repository.get_job_by_id(job.id)
        assert stored.status == BackgroundJobStatus.COMPLETED
        assert stored.progress == 100
        assert stored.meta == {"note": note}
        assert await count_rows(SiteBusiness, SiteBusiness.site_id == site.id) == 0

    @pytest.mark.asyncio
    async def test_failed_batch_is_counted(
        self, processor, seeder, directory, claim_job, recording_job_repository
    ):
        site = await seeder.site()
        await seeder.configure_site(
            site,
            categories=[directory["plumbers"], directory["roofers"]],
            cities=[directory["springfield"], directory["peoria"]]
        )

        original_add = processor.site_repository.add_site_businesses
        calls = []

        async def flaky_add(site_id, business_ids):
            calls.append(list(business_ids))
            if len(calls) == 1:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return await original_add(site_id, business_ids)

        processor.site_repository.add_site_businesses = flaky_add

        with patch("backend.app.services.processors.associate_site_businesses.UPSERT_BATCH_SIZE", 1):
            job = await claim_job(JobType.ASSOCIATE_SITE_BUSINESSES.value, {"siteId": str(site.id)})
            meta = await processor.process(job)

        assert len(calls) == 3
        assert meta.failed_batches == 1
        assert meta.associated_businesses == 2
        assert recording_job_repository.progress_history == [33, 67, 100]

        stored = await recording_job_repository.get_job_by_id(job.id)
        assert stored.status == BackgroundJobStatus.COMPLETED

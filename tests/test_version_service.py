"""
Version snapshot tests:
  - numbering starts at 1 and grows by one
  - snapshots hold value copies, unaffected by later edits
  - newest-first listing, content preview
  - restore with automatic backup, status untouched
  - concurrent snapshot requests never share a number
"""

import threading

import pytest

from planforge.core.exceptions import NotFoundError, PreconditionFailedError
from planforge.models import db
from planforge.models.collaboration import PlanVersion
from planforge.services import plan_service, share_service, version_service


def _reload(plan_id):
    db.session.expire_all()
    return plan_service.get_plan(plan_id)


@pytest.fixture()
def generated_plan(complete_plan, make_stub, make_orchestrator, owner):
    plan = complete_plan("LeanCanvas")
    make_orchestrator(make_stub("Original")).generate_all(plan.id, "en", owner)
    return _reload(plan.id)


class TestCreateSnapshot:

    def test_numbers_increase_from_one(self, generated_plan, owner):
        numbers = [version_service.create_snapshot(generated_plan.id, owner).version_number
                   for _ in range(3)]
        assert numbers == [1, 2, 3]
        assert _reload(generated_plan.id).version == 3

    def test_copies_values(self, generated_plan, owner):
        snapshot = version_service.create_snapshot(generated_plan.id, owner, comment="before edit")
        plan_service.update_section(generated_plan.id, "Solution", "Edited", owner)

        stored = version_service.get_version(generated_plan.id, snapshot.version_number)
        assert stored.solution == "Original"
        assert stored.comment == "before edit"
        assert stored.status == "Generated"
        assert stored.title == generated_plan.title
        assert stored.created_by == owner

    def test_snapshot_of_unknown_plan(self, owner):
        with pytest.raises(NotFoundError):
            version_service.create_snapshot("missing", owner)

    def test_reader_cannot_snapshot(self, generated_plan, owner):
        share_service.create_share(generated_plan.id, owner, shared_with_user="reader")
        with pytest.raises(PreconditionFailedError):
            version_service.create_snapshot(generated_plan.id, "reader")

    def test_concurrent_snapshots_get_distinct_numbers(self, app, generated_plan, owner):
        plan_id = generated_plan.id
        db.session.close()
        errors = []

        def worker():
            with app.app_context():
                try:
                    version_service.create_snapshot(plan_id, owner)
                except Exception as e:  # surfaced by the assertion below
                    errors.append(e)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        db.session.expire_all()
        numbers = sorted(v.version_number for v in PlanVersion.query.filter_by(plan_id=plan_id))
        assert numbers == [1, 2, 3, 4, 5]

    def test_numbering_lock_released_after_snapshot(self, generated_plan, owner):
        version_service.create_snapshot(generated_plan.id, owner)
        with pytest.raises(NotFoundError):
            version_service.create_snapshot("missing-plan", owner)
        assert generated_plan.id not in version_service._plan_locks
        assert "missing-plan" not in version_service._plan_locks


class TestListAndGet:

    def test_newest_first(self, generated_plan, owner):
        for comment in ("one", "two", "three"):
            version_service.create_snapshot(generated_plan.id, owner, comment=comment)
        versions = version_service.list_versions(generated_plan.id)
        assert [v.version_number for v in versions] == [3, 2, 1]
        assert versions[0].comment == "three"

    def test_content_preview_truncates(self, generated_plan, owner):
        plan_service.update_section(generated_plan.id, "ExecutiveSummary", "x" * 250, owner)
        snapshot = version_service.create_snapshot(generated_plan.id, owner)
        preview = snapshot.to_dict()["content_preview"]
        assert preview == "x" * 200 + "..."

    def test_to_dict_with_content(self, generated_plan, owner):
        snapshot = version_service.create_snapshot(generated_plan.id, owner)
        data = snapshot.to_dict(include_content=True)
        assert data["content"]["executive_summary"] == "Original"
        assert "appendix_data" in data["content"]

    def test_unknown_version(self, generated_plan):
        with pytest.raises(NotFoundError):
            version_service.get_version(generated_plan.id, 99)


class TestRestore:

    def test_restore_takes_backup_and_keeps_status(self, generated_plan, owner):
        version_service.create_snapshot(generated_plan.id, owner, comment="good")
        plan_service.update_section(generated_plan.id, "Solution", "Bad edit", owner)
        plan_service.transition_plan(generated_plan.id, "submit_for_review", owner)

        plan = version_service.restore_version(generated_plan.id, 1, owner)

        assert plan.get_section("Solution") == "Original"
        assert plan.status == "InReview"
        backup = version_service.get_version(generated_plan.id, 2)
        assert backup.comment == version_service.BACKUP_COMMENT
        assert backup.solution == "Bad edit"

    def test_restore_needs_full_access(self, generated_plan, owner):
        version_service.create_snapshot(generated_plan.id, owner)
        share_service.create_share(generated_plan.id, owner, permission="Edit", shared_with_user="editor")
        with pytest.raises(PreconditionFailedError):
            version_service.restore_version(generated_plan.id, 1, "editor")

    def test_restore_unknown_version(self, generated_plan, owner):
        with pytest.raises(NotFoundError):
            version_service.restore_version(generated_plan.id, 7, owner)
        assert version_service.list_versions(generated_plan.id) == []

"""
Clause2Case
Tests — Merge/Dedup Reconciler.
"""

from types import SimpleNamespace

from clause2case.services.reconcile_service import reconcile


def _tc(id_, source):
    return {"id": id_, "source": source, "title": f"TC {id_}"}


class TestReconcile:
    def test_authoritative_replaces_and_manual_dropped(self):
        existing = [_tc("g1", "generated"), _tc("m1", "manual"), _tc("g2", "generated")]
        authoritative = [_tc("m2", "manual"), _tc("m3", "manual")]
        merged = reconcile(existing, authoritative)
        assert [tc["id"] for tc in merged] == ["g1", "g2", "m2", "m3"]

    def test_matching_id_is_not_duplicated(self):
        existing = [_tc("g1", "generated"), _tc("x", "uploaded")]
        replacement = {"id": "x", "source": "manual", "title": "edited"}
        merged = reconcile(existing, [replacement])
        assert [tc["id"] for tc in merged] == ["g1", "x"]
        assert merged[-1]["title"] == "edited"

    def test_disjoint_inputs_keep_everything(self):
        existing = [_tc("g1", "generated"), _tc("u1", "uploaded")]
        authoritative = [_tc("m1", "manual")]
        merged = reconcile(existing, authoritative)
        assert len(merged) == len(existing) + len(authoritative)
        assert [tc["id"] for tc in merged] == ["g1", "u1", "m1"]

    def test_uploaded_entries_are_kept(self):
        merged = reconcile([_tc("u1", "uploaded")], [])
        assert [tc["id"] for tc in merged] == ["u1"]

    def test_empty_inputs(self):
        assert reconcile([], []) == []
        assert reconcile(None, None) == []

    def test_works_on_objects(self):
        existing = [SimpleNamespace(id="g1", source="generated"),
                    SimpleNamespace(id="m1", source="manual")]
        authoritative = [SimpleNamespace(id="m9", source="manual")]
        assert [tc.id for tc in reconcile(existing, authoritative)] == ["g1", "m9"]

    def test_inputs_not_mutated(self):
        existing = [_tc("g1", "generated"), _tc("m1", "manual")]
        authoritative = [_tc("m2", "manual")]
        reconcile(existing, authoritative)
        assert len(existing) == 2 and len(authoritative) == 1

    def test_each_id_appears_once(self):
        existing = [_tc(str(i), "generated" if i % 2 else "manual") for i in range(10)]
        authoritative = [_tc(str(i), "manual") for i in (1, 4, 11)]
        merged = reconcile(existing, authoritative)
        ids = [tc["id"] for tc in merged]
        assert len(ids) == len(set(ids))
        assert not any(tc["source"] == "manual" and tc not in authoritative for tc in merged)

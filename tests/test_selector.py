"""Tests for skill inference and teammate scoring."""

from taskdesk.delegation.models import MemberCapacity, SkillEntry, WorkloadSnapshot
from taskdesk.delegation.selector import score, recommend, skills_match, WORKLOAD_PENALTY_PER_TASK
from taskdesk.delegation.skills import infer_required_skills


def member(member_id, skills=None, open_tasks=0, role="USER"):
    return MemberCapacity(
        id=member_id,
        name=member_id.upper(),
        role=role,
        skills=[SkillEntry(name=name, level=level) for name, level in (skills or {}).items()],
        open_task_count=open_tasks,
    )


class TestSkillsMatch:

    def test_containment_both_directions(self):
        assert skills_match("Accounting", "accounting")
        assert skills_match("Advanced Accounting", "Accounting")
        assert skills_match("Excel", "Excel Modelling")

    def test_blank_never_matches(self):
        assert not skills_match("Accounting", "")
        assert not skills_match("  ", "Accounting")

    def test_unrelated(self):
        assert not skills_match("Programming", "Accounting")


class TestScore:

    def test_two_candidate_accounting_scenario(self):
        snapshot = WorkloadSnapshot(members=[
            member("a", {"Accounting": 5}, open_tasks=0),
            member("b", {"Accounting": 3}, open_tasks=1),
        ])

        results = score(["Accounting"], snapshot)

        assert [r.candidate_id for r in results] == ["a", "b"]
        assert results[0].final_score == 5
        assert results[1].final_score == 1

        recommendation = recommend("anything", snapshot, required_skills=["Accounting"])
        assert recommendation.recommended.candidate_id == "a"
        assert [r.candidate_id for r in recommendation.alternatives] == ["b"]

    def test_final_score_formula(self):
        snapshot = WorkloadSnapshot(members=[
            member("admin", {"Accounting": 2, "Excel": 4}, open_tasks=3, role="ADMIN"),
            member("user", {"Excel": 1}, open_tasks=2),
            member("idle"),
        ])

        for result in score(["Accounting", "Excel"], snapshot):
            assert result.workload_penalty == WORKLOAD_PENALTY_PER_TASK * result.open_task_count
            assert result.final_score == (
                result.skill_match_score + result.role_bonus - 2 * result.open_task_count
            )

        admin = next(r for r in score(["Accounting", "Excel"], snapshot) if r.candidate_id == "admin")
        assert admin.skill_match_score == 6
        assert admin.role_bonus == 1
        assert admin.final_score == 6 + 1 - 6

    def test_sorted_descending_and_stable(self):
        snapshot = WorkloadSnapshot(members=[
            member("first"),
            member("strong", {"Programming": 4}),
            member("second"),
            member("third"),
        ])

        results = score(["Programming"], snapshot)

        assert [r.candidate_id for r in results] == ["strong", "first", "second", "third"]
        scores = [r.final_score for r in results]
        assert scores == sorted(scores, reverse=True)

    def test_first_matching_declared_skill_counts_once(self):
        snapshot = WorkloadSnapshot(members=[
            member("a", {"Accounting": 2, "Accounting Advanced": 5}),
        ])

        result = score(["Accounting"], snapshot)[0]

        assert result.skill_match_score == 2
        assert {s.name for s in result.matching_skills} == {"Accounting", "Accounting Advanced"}

    def test_blank_required_skills_ignored(self):
        snapshot = WorkloadSnapshot(members=[member("a", {"Accounting": 5})])

        assert score(["", "  "], snapshot)[0].skill_match_score == 0

    def test_empty_roster(self):
        recommendation = recommend("fix the server", WorkloadSnapshot(members=[]))

        assert recommendation.recommended is None
        assert recommendation.ranked == []


class TestInference:

    def test_financial_keywords(self):
        assert infer_required_skills("Please review the P&L for October") == [
            "Accounting", "Financial Analysis", "Excel"
        ]

    def test_multiple_clusters_in_fixed_order(self):
        skills = infer_required_skills("Schedule a meeting about the contract")

        assert skills == ["Legal Research", "Contract Review",
                          "Project Management", "Documentation", "Communication"]

    def test_no_keywords(self):
        assert infer_required_skills("hello there") == []
        assert infer_required_skills(None) == []

    def test_injected_inference(self):
        snapshot = WorkloadSnapshot(members=[
            member("a", {"Accounting": 5}),
            member("b", {"Gardening": 5}),
        ])

        recommendation = recommend("trim the hedges", snapshot, infer=lambda text: ["Gardening"])

        assert recommendation.required_skills == ["Gardening"]
        assert recommendation.recommended.candidate_id == "b"

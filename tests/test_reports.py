"""Tests for the JSON views and the results export."""
from io import BytesIO

import openpyxl
import pytest

from judgeboard.models import Award
from judgeboard.reports import (
    build_results_report,
    detailed_view,
    insights_view,
    judge_progress_view,
    score_matrix_view,
    summary_view,
    team_list_view,
    to_csv,
    to_xlsx,
)
from judgeboard.scoring import resolve_awards


@pytest.fixture
def scored_event(event_rows):
    event_rows.team(1, "Rocket", mentor_name="Dr. Lee").team(2, "Comet").team(3, "Nebula")
    event_rows.judge("A", "Alice").judge("B", "Bob")
    event_rows.score(1, "A", [20, 22, 18, 24], reflections={"Communication": "Crisp"}, comments="Great demo")
    event_rows.score(1, "B", [25, 25, 20, 25])
    event_rows.score(2, "A", [10, 10, 10, 10])
    return event_rows


class TestViews:
    def test_summary_view(self, scored_event):
        rows = summary_view(scored_event.compute())

        assert [r["team_name"] for r in rows] == ["Rocket", "Comet", "Nebula"]
        assert rows[0] == {
            "team_id": 1,
            "team_name": "Rocket",
            "avg_score": 89.5,
            "total_score": 179,
            "judges_scored": 2,
            "rank": 1,
            "score_stddev": pytest.approx(5.5),
            "consensus": "medium",
        }
        assert rows[2]["avg_score"] == 0
        assert rows[2]["rank"] == 3

    def test_detailed_view_has_per_judge_breakdown(self, scored_event):
        rows = detailed_view(scored_event.compute())
        rocket = rows[0]

        assert rocket["mentor_name"] == "Dr. Lee"
        assert [js["judge_name"] for js in rocket["judge_scores"]] == ["Alice", "Bob"]
        alice = rocket["judge_scores"][0]
        assert alice["total_score"] == 84
        assert alice["comments"] == "Great demo"
        assert alice["submitted_at"] is not None
        assert [cs["criteria_name"] for cs in alice["criteria_scores"]] == [
            "Communication", "Funding", "Presentation", "Cohesion",
        ]
        assert alice["criteria_scores"][0]["reflection"] == "Crisp"
        assert rows[2]["judge_scores"] == []

    def test_score_matrix_marks_missing_scores_as_none(self, scored_event):
        view = score_matrix_view(scored_event.compute(), scored_event.judges)

        assert view["judges"] == [{"id": "A", "name": "Alice"}, {"id": "B", "name": "Bob"}]
        comet = next(t for t in view["teams"] if t["name"] == "Comet")
        assert [cell["score"] for cell in comet["scores"]] == [40, None]

    def test_judge_progress_newest_first(self, scored_event):
        progress = judge_progress_view(scored_event.compute(), "A")

        assert [p["team_name"] for p in progress] == ["Comet", "Rocket"]
        rocket = progress[1]
        assert rocket["breakdown"] == {"communication": 20, "funding": 22, "presentation": 18, "cohesion": 24}
        assert rocket["reflections"] == {"communication": "Crisp"}
        assert rocket["comments"] == "Great demo"

    def test_judge_progress_for_judge_without_scores(self, scored_event):
        assert judge_progress_view(scored_event.compute(), "Z") == []

    def test_team_list_flags_what_the_judge_has_scored(self, scored_event):
        teams = team_list_view(scored_event.compute(), "B")

        assert [(t["name"], t["has_current_user_scored"]) for t in teams] == [
            ("Rocket", True), ("Comet", False), ("Nebula", False),
        ]
        assert [t["completed_scores"] for t in teams] == [2, 1, 0]
        assert [t["average_score"] for t in teams] == [89.5, 40, None]

    def test_team_list_without_judge(self, scored_event):
        teams = team_list_view(scored_event.compute())

        assert not any(t["has_current_user_scored"] for t in teams)

    def test_insights(self, scored_event):
        insights = insights_view(scored_event.compute())

        assert insights["total_teams"] == 3
        assert insights["total_judges"] == 2
        assert insights["completed_scores"] == 3
        assert insights["average_score"] == pytest.approx((84 + 95 + 40) / 12)

    def test_insights_without_scores(self, event_rows):
        event_rows.team(1)
        assert insights_view(event_rows.compute())["average_score"] is None


class TestExport:
    @pytest.fixture
    def report(self, scored_event):
        awards = resolve_awards([Award(team_id=1, event_id=1, award_type="first_place")], scored_event.teams)
        return build_results_report(
            "Spring Pitch",
            "Meloy Program",
            scored_event.compute(),
            scored_event.judges,
            scored_event.teams,
            scored_event.criteria,
            awards,
        )

    def test_roster_sheet(self, report):
        assert report.title == "Meloy Program - Spring Pitch"
        assert report.roster.values.tolist() == [
            ["Judges", "Judge 1:", "Alice"],
            ["Judges", "Judge 2:", "Bob"],
            ["Teams", "Team 1:", "Rocket"],
            ["Teams", "Mentor:", "Dr. Lee"],
            ["Teams", "Team 2:", "Comet"],
            ["Teams", "Team 3:", "Nebula"],
        ]

    def test_score_sheet_covers_every_team_and_judge(self, report):
        sheet = report.score_sheet

        assert list(sheet.columns) == [
            "Team", "Judge", "Communication (25)", "Funding (25)", "Presentation (25)", "Cohesion (25)", "Total (100)",
        ]
        assert len(sheet) == 6
        assert sheet.iloc[0].tolist() == ["Rocket", "Alice", 20, 22, 18, 24, 84]
        assert sheet.iloc[3].tolist() == ["Comet", "Bob", 0, 0, 0, 0, 0]

    def test_rankings_and_awards(self, report):
        assert report.rankings.values.tolist() == [[1, "Rocket", 89.5], [2, "Comet", 40.0], [3, "Nebula", 0.0]]
        awards = dict(report.awards.values.tolist())
        assert awards["First Place:"] == "Rocket"
        assert awards["Second Place:"] == "(Not Assigned)"

    def test_csv(self, report):
        lines = to_csv(report.rankings).splitlines()
        assert lines[0] == "Rank,Team Name,Average Score"
        assert lines[1] == "1,Rocket,89.5"

    def test_xlsx_workbook(self, report):
        workbook = openpyxl.load_workbook(BytesIO(to_xlsx(report)))

        assert workbook.sheetnames == ["Judge & Team Names", "Score Sheet", "Final Results"]
        assert workbook["Judge & Team Names"]["A1"].value == "Meloy Program - Spring Pitch"
        assert workbook["Score Sheet"]["A1"].value == "Team"
        assert workbook["Score Sheet"].max_row == 7

        final_rows = list(workbook["Final Results"].iter_rows(values_only=True))
        labelled = {row[0]: row[1] for row in final_rows if row and row[0]}
        assert labelled["First Place:"] == "Rocket"
        assert labelled["Second Place:"] == "(Not Assigned)"
        assert labelled["Best Presentation:"] == "(Not Assigned)"
        assert ("Rank", "Team Name", "Average Score") in [row[:3] for row in final_rows]

import pytest

from factories import ms

from bizpulse.breakdowns import (
    Contribution,
    breakdown_doc_key,
    breakdown_total_agorot,
    build_breakdowns,
    line_items_breakdown,
    names_breakdown,
    none_breakdown,
    to_agorot,
)


@pytest.mark.parametrize(
    "amount, expected",
    [
        (None, 0),
        (0.0, 0),
        (12.34, 1234),
        (0.005, 1),
        (1180.0, 118000),
        (9000.0 / 1.18, 762712),
    ],
)
def test_to_agorot_rounds_half_up(amount, expected):
    assert to_agorot(amount) == expected


def test_breakdown_doc_key_renames_average_deal():
    assert breakdown_doc_key("avgRevenuePerDeal") == "avgRevenuePerDealGross"
    assert breakdown_doc_key("monthlyRevenue") == "monthlyRevenue"


def test_line_items_document():
    doc = line_items_breakdown(
        "monthlyRevenue",
        [
            Contribution("E1", "Wedding Cohen", "done", ms("2025-12-12T09:00:00Z"), 7000.0),
            Contribution("E2", "Bar Mitzvah Levi", None, None, 2000.5),
        ],
        generated_at="2025-12-16T12:00:00.000Z",
    )

    assert doc["schemaVersion"] == 1
    assert doc["metricKey"] == "monthlyRevenue"
    assert doc["kind"] == "line_items"
    assert doc["generatedAt"] == "2025-12-16T12:00:00.000Z"
    assert doc["items"] == [
        {
            "id": "E1",
            "name": "Wedding Cohen",
            "status": "done",
            "dateIso": "2025-12-12T09:00:00.000Z",
            "amountAgorot": 700000,
        },
        {"id": "E2", "name": "Bar Mitzvah Levi", "amountAgorot": 200050},
    ]
    assert breakdown_total_agorot(doc) == 900050


def test_names_and_none_documents():
    names = names_breakdown("totalLeads", [Contribution("L1", "Lead L1", "New Lead")])
    assert names["kind"] == "names"
    assert names["items"] == [{"id": "L1", "name": "Lead L1", "status": "New Lead"}]
    assert "generatedAt" not in names
    assert breakdown_total_agorot(names) == 0

    empty = none_breakdown("closeRatePct")
    assert empty == {"schemaVersion": 1, "metricKey": "closeRatePct", "kind": "none"}


def test_build_breakdowns_picks_kind_per_metric():
    contributions = {
        "expectedExpenses": (Contribution("X1", "Rent", amount_gross_ils=1180.0),),
        "closures": (Contribution("L1", "Lead L1"),),
        "avgRevenuePerDealGross": (Contribution("L1", "Lead L1", amount_gross_ils=9000.0),),
    }

    docs = build_breakdowns(
        ["expectedExpenses", "closures", "avgRevenuePerDeal", "closeRatePct", "cancellations"],
        contributions,
        generated_at="2025-12-16T12:00:00.000Z",
    )

    assert set(docs) == {
        "expectedExpenses",
        "closures",
        "avgRevenuePerDealGross",
        "closeRatePct",
        "cancellations",
    }
    assert docs["expectedExpenses"]["kind"] == "line_items"
    assert docs["avgRevenuePerDealGross"]["kind"] == "line_items"
    assert docs["avgRevenuePerDealGross"]["items"][0]["amountAgorot"] == 900000
    assert docs["closures"]["kind"] == "names"
    assert docs["closeRatePct"]["kind"] == "none"
    assert "items" not in docs["closeRatePct"]
    # Metrics without contributions still get an (empty) document.
    assert docs["cancellations"]["items"] == []

"""Season CSV export"""

import csv
from datetime import date
from io import StringIO
from typing import Optional

from .schemas import SeasonSummary

BASE_COLUMNS = ["Family Group", "Check-In Date", "Check-Out Date", "Nights", "Status"]
BILLING_COLUMNS = ["Base Charge", "Total Charges"]
PAYMENT_COLUMNS = ["Amount Paid", "Balance Due", "Payment Status"]
OCCUPANCY_COLUMNS = ["Average Occupancy"]


def _money(value: float) -> str:
    return f"{value:.2f}"


def _day(value: Optional[date]) -> str:
    return value.isoformat() if value else ""


def season_export_filename(season_year: int, today: Optional[date] = None) -> str:
    return f"season_{season_year}_summary_{(today or date.today()).isoformat()}.csv"


def build_season_csv(
    summary: SeasonSummary,
    include_billing: bool = True,
    include_payments: bool = True,
    include_occupancy: bool = True,
) -> str:
    """
    Render a season summary as CSV: one row per stay, one per split charge,
    then a TOTALS row. Data cells are quoted; money has two decimals.
    """
    header = list(BASE_COLUMNS)
    if include_billing:
        header += BILLING_COLUMNS
    if include_payments:
        header += PAYMENT_COLUMNS
    if include_occupancy:
        header += OCCUPANCY_COLUMNS

    output = StringIO()
    csv.writer(output, lineterminator="\n").writerow(header)
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")

    weighted_guests = 0.0
    occupancy_days = 0

    for family in summary.family_summaries:
        for stay in family.stays:
            row = [
                family.family_group,
                _day(stay.check_in),
                _day(stay.check_out),
                str(stay.nights),
                stay.status,
            ]
            if include_billing:
                row += [_money(stay.base_charge), _money(stay.total_charged)]
            if include_payments:
                row += [_money(stay.amount_paid), _money(stay.balance_due), stay.payment_status]
            if include_occupancy:
                if stay.average_occupancy is None:
                    row.append("N/A")
                else:
                    row.append(f"{stay.average_occupancy:.1f}")
                    weighted_guests += stay.average_occupancy * stay.occupancy_days
                    occupancy_days += stay.occupancy_days
            writer.writerow(row)

        for charge in family.split_charges:
            row = [family.family_group, _day(charge.check_in), _day(charge.check_out), "0", "split"]
            if include_billing:
                row += [_money(charge.total_charged), _money(charge.total_charged)]
            if include_payments:
                row += [
                    _money(charge.amount_paid),
                    _money(charge.balance_due),
                    charge.payment_status,
                ]
            if include_occupancy:
                row.append("N/A")
            writer.writerow(row)

    totals = summary.totals
    totals_row = ["TOTALS", "", "", str(totals.total_nights), ""]
    if include_billing:
        totals_row += ["", _money(totals.total_charged)]
    if include_payments:
        totals_row += [_money(totals.total_paid), _money(totals.outstanding), ""]
    if include_occupancy:
        totals_row.append(f"{weighted_guests / occupancy_days:.1f}" if occupancy_days else "N/A")
    writer.writerow(totals_row)

    return output.getvalue()

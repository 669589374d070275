from __future__ import annotations

from io import BytesIO
from typing import Iterable

import openpyxl
from openpyxl.utils import get_column_letter

from .models import Expense

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

COLUMNS = [
	("Title", 25),
	("Amount", 15),
	("Category", 15),
	("Description", 30),
	("Date", 15),
]


def expenses_workbook(expenses: Iterable[Expense]) -> bytes:
	wb = openpyxl.Workbook()
	ws = wb.active
	ws.title = "Expenses"
	ws.append([header for header, _ in COLUMNS])
	for idx, (_, width) in enumerate(COLUMNS, start=1):
		ws.column_dimensions[get_column_letter(idx)].width = width
	for e in expenses:
		ws.append([e.title, float(e.amount), e.category, e.description, e.date.isoformat()])
	bio = BytesIO()
	wb.save(bio)
	return bio.getvalue()

import unittest

from examcal.parse import parse_exam_row, parse_exam_table

PAGE = """
<html><body>
<table><tr><td>Menu</td><td>Contact</td></tr></table>
<table>
  <tr><th>Código</th><th>Asignatura</th><th>Fecha</th><th>Hora</th><th>Aula</th><th>Observaciones</th></tr>
  <tr><td>11520</td><td>Cálculo II</td><td>10/06/2025</td><td>09:00 - 11:30</td><td>1G 0.1</td><td>Primer parcial</td></tr>
  <tr><td></td><td></td><td></td><td></td><td></td><td></td></tr>
  <tr><td>11521</td><td>Física</td><td>2025-06-11</td><td>15:00</td><td></td><td>Aula 0.2</td></tr>
</table>
</body></html>
"""


class TestParseExamTable(unittest.TestCase):
    def test_parses_rows_in_page_order(self) -> None:
        rows = parse_exam_table(PAGE)
        self.assertEqual(len(rows), 2)

        first = rows[0]
        self.assertEqual(first["subject"], "Cálculo II")
        self.assertEqual(first["code"], "11520")
        self.assertEqual(first["date"], "2025-06-10")
        self.assertEqual(first["time"], "09:00")
        self.assertEqual(first["duration_minutes"], 150)
        self.assertEqual(first["location"], "1G 0.1")
        self.assertEqual(first["comment"], "Primer parcial")
        self.assertEqual(first["id"], "11520__2025-06-10T0900")

        second = rows[1]
        self.assertEqual(second["subject"], "Física")
        self.assertEqual(second["time"], "15:00")
        self.assertIsNone(second["duration_minutes"])
        self.assertEqual(second["location"], "")

    def test_page_without_exam_table(self) -> None:
        with self.assertLogs("examcal.parse", "WARNING"):
            self.assertEqual(parse_exam_table("<p>Nothing published yet</p>"), [])


class TestParseExamRow(unittest.TestCase):
    def test_row_without_subject_is_ignored(self) -> None:
        self.assertIsNone(parse_exam_row({"subject": "  ", "date": "2025-06-10"}))

    def test_explicit_duration_wins(self) -> None:
        row = parse_exam_row({"subject": "S", "date": "2025-06-10", "time": "09:00-10:00", "duration_minutes": "90 min"})
        self.assertEqual(row["duration_minutes"], 90)

    def test_unparseable_date_is_kept(self) -> None:
        row = parse_exam_row({"subject": "S", "date": "June 10th", "time": ""})
        self.assertEqual(row["date"], "June 10th")
        self.assertIsNone(row["time"])
        self.assertEqual(row["id"], "S__June 10thT")

    def test_published_id_is_kept(self) -> None:
        row = parse_exam_row({"id": "X-1", "subject": "S", "date": "01.02.2025", "time": "8:30"})
        self.assertEqual(row["id"], "X-1")
        self.assertEqual(row["date"], "2025-02-01")
        self.assertEqual(row["time"], "8:30")


if __name__ == "__main__":
    unittest.main()

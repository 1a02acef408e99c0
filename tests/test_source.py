import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import requests

from examcal.errors import UpstreamFetchError
from examcal.source import HtmlExamSource, JsonFileExamSource, RestExamSource, save_rows


def _response(json_data=None, text="", status_error=None):
    resp = mock.Mock()
    resp.json.return_value = json_data
    resp.text = text
    resp.raise_for_status.side_effect = status_error
    return resp


class TestRestExamSource(unittest.TestCase):
    def test_fetch_rows(self) -> None:
        rows = [{"exam_instance_id": 1, "subject": "Calculus II"}, "junk"]
        with mock.patch("examcal.source.requests.get", return_value=_response(rows)) as get:
            source = RestExamSource("https://db.example.org/", api_key="secret")
            self.assertEqual(source.fetch_rows(), [rows[0]])

        args, kwargs = get.call_args
        self.assertEqual(args[0], "https://db.example.org/rest/v1/exams")
        self.assertEqual(kwargs["params"], {"select": "*", "order": "exam_date.asc"})
        self.assertEqual(kwargs["headers"]["apikey"], "secret")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer secret")
        self.assertEqual(kwargs["timeout"], 30)

    def test_network_error(self) -> None:
        with mock.patch("examcal.source.requests.get", side_effect=requests.ConnectionError("refused")):
            with self.assertRaises(UpstreamFetchError):
                RestExamSource("https://db.example.org").fetch_rows()

    def test_http_error(self) -> None:
        resp = _response(status_error=requests.HTTPError("503"))
        with mock.patch("examcal.source.requests.get", return_value=resp):
            with self.assertRaises(UpstreamFetchError):
                RestExamSource("https://db.example.org").fetch_rows()

    def test_not_a_list(self) -> None:
        with mock.patch("examcal.source.requests.get", return_value=_response({"message": "nope"})):
            with self.assertRaises(UpstreamFetchError):
                RestExamSource("https://db.example.org").fetch_rows()


class TestHtmlExamSource(unittest.TestCase):
    def test_fetch_rows(self) -> None:
        html = (
            "<table><tr><th>Subject</th><th>Date</th><th>Time</th></tr>"
            "<tr><td>Algebra</td><td>2025-06-11</td><td>12:00</td></tr></table>"
        )
        with mock.patch("examcal.source.requests.get", return_value=_response(text=html)):
            rows = HtmlExamSource("https://school.example.org/exams").fetch_rows()
        self.assertEqual([r["subject"] for r in rows], ["Algebra"])


class TestJsonFiles(unittest.TestCase):
    def test_save_and_read_back(self) -> None:
        rows = [{"id": 1, "subject": "Cálculo"}, {"id": 2, "subject": "Física"}]
        with tempfile.TemporaryDirectory() as d:
            path = Path(d) / "sub" / "rows.json"
            self.assertEqual(save_rows(rows, path), 2)
            self.assertEqual(JsonFileExamSource(path).fetch_rows(), rows)

    def test_unreadable_file(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            path = Path(d) / "rows.json"
            with self.assertRaises(UpstreamFetchError):
                JsonFileExamSource(path).fetch_rows()
            path.write_text(json.dumps({"rows": []}), encoding="utf-8")
            with self.assertRaises(UpstreamFetchError):
                JsonFileExamSource(path).fetch_rows()


if __name__ == "__main__":
    unittest.main()

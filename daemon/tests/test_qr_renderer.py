"""Tests for QR rendering."""

from wagate.pairing import QrRenderer, waiting_page

PAYLOAD = "2@AbCdEf,GhIjKl,MnOpQr=="


class TestQrRenderer:
    """Test QR output formats."""

    def test_terminal_output(self):
        output = QrRenderer(PAYLOAD).to_terminal()

        assert isinstance(output, str)
        assert len(output.splitlines()) > 10

    def test_png_file(self, tmp_path):
        path = tmp_path / "pairing.png"

        QrRenderer(PAYLOAD).to_png(str(path))

        assert path.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"

    def test_data_uri(self):
        uri = QrRenderer(PAYLOAD).to_data_uri()

        assert uri.startswith("data:image/png;base64,")

    def test_html_embeds_image_and_attempts(self):
        page = QrRenderer(PAYLOAD).to_html(attempt=2, max_attempts=3)

        assert "<!DOCTYPE html>" in page
        assert "data:image/png;base64," in page
        assert "Attempt 2 of 3" in page

    def test_html_without_attempt_counter(self):
        page = QrRenderer(PAYLOAD).to_html()

        assert "Attempt" not in page

    def test_payload_not_leaked_as_text(self):
        """Only the image carries the challenge."""
        page = QrRenderer(PAYLOAD).to_html()

        assert PAYLOAD not in page


def test_waiting_page():
    page = waiting_page()

    assert "Waiting for pairing code" in page
    assert "data:image/png" not in page

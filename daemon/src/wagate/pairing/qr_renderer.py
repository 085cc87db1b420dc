"""QR code rendering for pairing challenges.

Renders the challenge payload issued by the transport for display in the
terminal, as a PNG file, or as an HTML page served by the status server.
"""

import base64
import io

import qrcode
from qrcode.main import QRCode


class QrRenderer:
    """Render one pairing challenge as a scannable code."""

    def __init__(self, payload: str):
        """Initialize renderer.

        Args:
            payload: Challenge token, encoded into the QR code as-is.
        """
        self.payload = payload

    def _create_qr(self) -> QRCode:
        qr = qrcode.QRCode(
            version=None,  # Auto-size
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(self.payload)
        qr.make(fit=True)
        return qr

    def to_terminal(self) -> str:
        """Generate ASCII art for terminal display.

        Returns:
            String with QR code using Unicode block characters.
        """
        qr = self._create_qr()

        output = io.StringIO()
        qr.print_ascii(out=output, invert=True)
        return output.getvalue()

    def to_png(self, path: str) -> None:
        """Save QR code as PNG file.

        Args:
            path: Path to save PNG file.
        """
        qr = self._create_qr()
        img = qr.make_image(fill_color="black", back_color="white")
        img.save(path)

    def to_data_uri(self) -> str:
        """Return the QR code as a base64 PNG data URI."""
        qr = self._create_qr()
        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        img_b64 = base64.b64encode(buffer.getvalue()).decode("ascii")
        return f"data:image/png;base64,{img_b64}"

    def to_html(self, attempt: int = 0, max_attempts: int = 0) -> str:
        """Generate HTML with embedded QR code.

        Args:
            attempt: Current pairing attempt, shown when non-zero.
            max_attempts: Attempt ceiling.

        Returns:
            Complete HTML document with embedded QR code image.
        """
        counter = ""
        if attempt:
            counter = f"<p>Attempt {attempt} of {max_attempts}</p>"

        return _PAGE.format(
            title="Scan to Pair",
            body=(
                f'<img src="{self.to_data_uri()}" alt="QR Code">\n'
                f"    {counter}\n"
                "    <p>Open the messaging app, go to Linked devices and scan this code</p>"
            ),
        )


def waiting_page() -> str:
    """HTML shown while no challenge is pending."""
    return _PAGE.format(
        title="Waiting for pairing code...",
        body=(
            "<p>The transport has not issued a pairing code yet.</p>\n"
            '    <button onclick="location.reload()">Reload</button>'
        ),
    )


_PAGE = """<!DOCTYPE html>
<html>
<head>
    <title>wagate Pairing</title>
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <style>
        body {{
            display: flex;
            flex-direction: column;
            align-items: center;
            justify-content: center;
            height: 100vh;
            margin: 0;
            background: #1a1a1a;
            color: #fff;
            font-family: system-ui, sans-serif;
        }}
        h1 {{ margin-bottom: 20px; }}
        img {{ border: 10px solid white; border-radius: 10px; }}
        p {{ margin-top: 20px; color: #888; }}
    </style>
</head>
<body>
    <h1>{title}</h1>
    {body}
</body>
</html>
"""

import segno


class SegnoPairingRenderer:
    """Renders a pairing code as a PNG data URI for the settings page."""

    def __init__(self, scale: int = 6, border: int = 2, error: str = "m") -> None:
        self.scale = scale
        self.border = border
        self.error = error

    def render(self, code: str) -> str:
        qr = segno.make(code, error=self.error, micro=False)
        return qr.png_data_uri(scale=self.scale, border=self.border)

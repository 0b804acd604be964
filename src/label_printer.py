"""
Product label printing.

Renders Code-128 labels for product SKUs so items without a usable
manufacturer barcode can be scanned at the packing station. The bars encode
either the PKT1 token for the SKU or the bare SKU; the SKU and an optional
product name are printed underneath.
"""
import io
from pathlib import Path
from typing import Dict, Iterable, Optional

import barcode
from barcode.writer import ImageWriter
from PIL import Image, ImageDraw, ImageFont

from logger import get_logger
from payload_codec import encode_product_token

logger = get_logger(__name__)

# Entry-level thermal printers (Zebra, Brother, Dymo, TSC) print at 203 DPI
DEFAULT_DPI = 203
DEFAULT_LABEL_WIDTH_MM = 65
DEFAULT_LABEL_HEIGHT_MM = 35

# Space below the bars for the SKU and product name lines
TEXT_AREA_HEIGHT = 80
FONT_SIZE_PT = 28


def _mm_to_px(mm: float, dpi: int) -> int:
    return int((mm / 25.4) * dpi)


def safe_file_stem(sku: str) -> str:
    """File name for a SKU's label: alphanumerics, '-' and '_' only."""
    stem = "".join(c for c in str(sku) if c.isalnum() or c in '-_').rstrip()
    return stem or "unnamed_sku"


class ProductLabelPrinter:
    """
    Writes one PNG label per SKU into output_dir.

    Attributes:
        output_dir (Path): Where label PNGs are written
        use_token (bool): Encode PKT1 tokens instead of bare SKUs
        label_width_px / label_height_px (int): Label canvas size in pixels
    """

    def __init__(self, output_dir: Path, dpi: int = DEFAULT_DPI,
                 width_mm: float = DEFAULT_LABEL_WIDTH_MM,
                 height_mm: float = DEFAULT_LABEL_HEIGHT_MM,
                 use_token: bool = True):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.use_token = use_token
        self.label_width_px = _mm_to_px(width_mm, dpi)
        self.label_height_px = _mm_to_px(height_mm, dpi)
        self._code128 = barcode.get_barcode_class('code128')
        self._font, self._font_bold = self._load_fonts()

    @staticmethod
    def _load_fonts():
        try:
            return (ImageFont.truetype("arial.ttf", FONT_SIZE_PT),
                    ImageFont.truetype("arialbd.ttf", FONT_SIZE_PT))
        except IOError:
            logger.warning("Arial fonts not found, falling back to default font")
            default = ImageFont.load_default()
            return default, default

    def barcode_content(self, sku: str) -> str:
        return encode_product_token(sku) if self.use_token else sku

    def render_label(self, sku: str, product_name: Optional[str] = None) -> Path:
        """
        Render one label and save it as <output_dir>/<sku>.png.

        Raises:
            RuntimeError: If the barcode cannot be generated for this SKU
        """
        content = self.barcode_content(sku)
        try:
            barcode_obj = self._code128(content, writer=ImageWriter())
            buffer = io.BytesIO()
            barcode_obj.write(buffer, {
                'module_height': 15.0,
                'write_text': False,
                'quiet_zone': 2,
            })
        except Exception as e:
            logger.error(f"Barcode generation failed for SKU {sku}: {e}", exc_info=True)
            raise RuntimeError(f"Cannot generate barcode for SKU {sku}: {e}") from e

        buffer.seek(0)
        barcode_img = Image.open(buffer)

        bars_height = self.label_height_px - TEXT_AREA_HEIGHT
        aspect_ratio = barcode_img.width / barcode_img.height
        new_w = min(int(bars_height * aspect_ratio), self.label_width_px)
        barcode_img = barcode_img.resize((new_w, bars_height), Image.LANCZOS)

        label_img = Image.new('RGB', (self.label_width_px, self.label_height_px), 'white')
        label_img.paste(barcode_img, ((self.label_width_px - new_w) // 2, 0))

        draw = ImageDraw.Draw(label_img)
        y = bars_height + 5
        for text, font in ((sku, self._font_bold), (product_name, self._font)):
            if not text:
                continue
            bbox = draw.textbbox((0, 0), text, font=font)
            x = (self.label_width_px - (bbox[2] - bbox[0])) / 2
            draw.text((x, y), text, font=font, fill='black')
            y += (bbox[3] - bbox[1]) + 5

        path = self.output_dir / f"{safe_file_stem(sku)}.png"
        label_img.save(path)
        logger.debug(f"Label written: {path}")
        return path

    def render_labels(self, products: Dict[str, Optional[str]]) -> Dict[str, Path]:
        """Render labels for a {sku: product_name} mapping; returns {sku: path}."""
        paths = {sku: self.render_label(sku, name) for sku, name in products.items()}
        logger.info(f"Generated {len(paths)} product labels in {self.output_dir}")
        return paths

    def render_skus(self, skus: Iterable[str]) -> Dict[str, Path]:
        return self.render_labels({sku: None for sku in skus})

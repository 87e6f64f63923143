from io import BytesIO

from PIL import ImageFont


A4_SIZE = (1240, 1754)


def image_to_pdf_bytes(images):
    if not images:
        return b''
    rgb_images = [img.convert('RGB') for img in images]
    output = BytesIO()
    rgb_images[0].save(output, format='PDF', save_all=True, append_images=rgb_images[1:], resolution=150)
    return output.getvalue()


def load_font(size):
    return ImageFont.load_default(size=size)

"""Bundled top landmarks used as the static catalog source."""

from landmarks.models import TopLandmarkRecord

TOP_LANDMARKS: tuple[TopLandmarkRecord, ...] = (
    TopLandmarkRecord(
        name="Palacio de Bellas Artes",
        coordinates=(-99.1353, 19.4373),
        description="A prominent cultural center in Mexico City.",
    ),
    TopLandmarkRecord(
        name="Zócalo",
        coordinates=(-99.1328, 19.4326),
        description="The main central square in Mexico City.",
    ),
    TopLandmarkRecord(
        name="Templo Mayor",
        coordinates=(-99.1308, 19.4353),
        description="The main temple of the Aztec capital, now an archaeological site.",
    ),
    TopLandmarkRecord(
        name="Chapultepec Park",
        coordinates=(-99.1944, 19.4189),
        description="One of the largest city parks in the Western Hemisphere.",
    ),
    TopLandmarkRecord(
        name="Castillo de Chapultepec",
        coordinates=(-99.1906, 19.4158),
        description="A castle on top of Chapultepec Hill with panoramic views.",
    ),
    TopLandmarkRecord(
        name="Museo Nacional de Antropología",
        coordinates=(-99.1878, 19.4258),
        description="One of the most comprehensive anthropology museums in the world.",
    ),
    TopLandmarkRecord(
        name="Parque México",
        coordinates=(-99.1736, 19.4117),
        description="A park in the Condesa neighborhood known for its Art Deco design.",
    ),
    TopLandmarkRecord(
        name="Coyoacán",
        coordinates=(-99.1617, 19.3539),
        description="A historic neighborhood with cobblestone streets and the Frida Kahlo Museum.",
    ),
    TopLandmarkRecord(
        name="Xochimilco",
        coordinates=(-99.1056, 19.2550),
        description="Known for its canals and colorful boats called trajineras.",
    ),
)

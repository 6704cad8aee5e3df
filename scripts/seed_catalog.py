"""Seed a small demo album catalog into the albums table."""
import asyncio

from sqlalchemy import select

from waxfeed.config import get_settings
from waxfeed.database import Database
from waxfeed.models.album import Album


DEMO_ALBUMS = [
    {"title": "OK Computer", "artist_name": "Radiohead",
     "genres": ["alternative rock", "art rock"], "release_year": 1997},
    {"title": "Kind of Blue", "artist_name": "Miles Davis",
     "genres": ["jazz", "modal jazz"], "release_year": 1959},
    {"title": "Illmatic", "artist_name": "Nas",
     "genres": ["hip-hop", "east coast hip hop"], "release_year": 1994},
    {"title": "Selected Ambient Works 85-92", "artist_name": "Aphex Twin",
     "genres": ["electronic", "ambient", "techno"], "release_year": 1992},
    {"title": "What's Going On", "artist_name": "Marvin Gaye",
     "genres": ["soul", "motown"], "release_year": 1971},
    {"title": "Master of Puppets", "artist_name": "Metallica",
     "genres": ["metal", "thrash metal"], "release_year": 1986},
    {"title": "For Emma, Forever Ago", "artist_name": "Bon Iver",
     "genres": ["indie folk", "indie"], "release_year": 2007},
    {"title": "Emotion", "artist_name": "Carly Rae Jepsen",
     "genres": ["pop", "synth-pop"], "release_year": 2015},
    {"title": "Red Headed Stranger", "artist_name": "Willie Nelson",
     "genres": ["country", "outlaw country"], "release_year": 1975},
    {"title": "Goldberg Variations (1981)", "artist_name": "Glenn Gould",
     "genres": ["classical", "baroque"], "release_year": 1982},
    {"title": "Loveless", "artist_name": "My Bloody Valentine",
     "genres": ["shoegaze", "alternative rock"], "release_year": 1991},
    {"title": "A Love Supreme", "artist_name": "John Coltrane",
     "genres": ["jazz", "free jazz"], "release_year": 1965},
]


async def seed():
    database = Database.from_settings(get_settings())
    try:
        async with database.session() as session:
            for album in DEMO_ALBUMS:
                existing = await session.execute(
                    select(Album.id).where(
                        Album.title == album["title"],
                        Album.artist_name == album["artist_name"],
                    )
                )
                if existing.scalar_one_or_none() is None:
                    session.add(Album(**album))
                    print(f"  Seeded {album['artist_name']} - {album['title']}")
                else:
                    print(f"  {album['title']} already exists, skipping.")
    finally:
        await database.dispose()
    print("Done seeding catalog.")


if __name__ == "__main__":
    asyncio.run(seed())

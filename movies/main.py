from fastapi import FastAPI, Body, Depends, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import ValidationError
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import PyMongoError
from typing import List, Optional
from html import escape
from movies.models.movies import Movie, MovieCreate, MovieUpdate
from movies.database.db import get_collection, wait_for_db, close_db
import uvicorn
import logging
import time
import os
import re

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))

logging.basicConfig(level=getattr(logging, LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

MOVIE_NOT_FOUND = "Movie not found"
# Keeps Mongo's _id out of every document handed back to clients
PROJECTION = {"_id": 0}
INTEGER_PATTERN = re.compile(r"-?[0-9]+")
# BSON stores integers as signed 64-bit values
INT64_MIN = -2 ** 63
INT64_MAX = 2 ** 63 - 1

app = FastAPI(
    title="Movies service",
    description="API for managing a movies collection",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup_event():
    logger.info("Launching the movies service...")
    wait_for_db()
    logger.info("The service is ready to work")


@app.on_event("shutdown")
def shutdown_event():
    close_db()


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)")
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    content = {"error": exc.detail}
    # Raised by the router itself when no route matches the path
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        content = {
            "error": "Not found",
            "message": f"Route {request.method} {request.url.path} does not exist",
        }
    return JSONResponse(
        content=content,
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


def describe_errors(errors) -> str:
    """Flatten pydantic error entries into a single readable message."""
    parts = []
    for error in errors:
        if error.get("type") == "json_invalid":
            parts.append("body: malformed JSON")
            continue
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "body"
        message = error.get("msg", "invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        parts.append(f"{field}: {message}")
    return "; ".join(parts)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    message = describe_errors(exc.errors())
    logger.warning(f"Rejected {request.method} {request.url.path}: {message}")
    return JSONResponse(
        content={"error": "Validation failed", "message": message},
        status_code=status.HTTP_400_BAD_REQUEST,
    )


@app.exception_handler(PyMongoError)
async def database_exception_handler(request: Request, exc: PyMongoError):
    logger.error(f"Database error on {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
    return JSONResponse(
        content={"error": "Internal server error"},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
    return JSONResponse(
        content={"error": "Internal server error"},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def parse_int(value: str) -> Optional[int]:
    """Parse a plain base-10 integer that fits in a BSON int64, else None."""
    value = value.strip()
    if not INTEGER_PATTERN.fullmatch(value):
        return None
    number = int(value)
    if not INT64_MIN <= number <= INT64_MAX:
        return None
    return number


def parse_movie_id(movie_id: str) -> int:
    movie_key = parse_int(movie_id)
    # A malformed id can never match a stored movie
    if movie_key is None:
        logger.warning(f"A malformed movie ID was requested: {movie_id!r}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=MOVIE_NOT_FOUND
        )
    return movie_key


def build_filter(title: Optional[str], year: Optional[str], director: Optional[str]) -> dict:
    """Translate the list query parameters into a Mongo filter.

    ``title`` and ``director`` match case-insensitive substrings.
    ``year`` matches exactly and is dropped when it is not an integer.
    """
    query = {}
    if title and title.strip():
        query["title"] = {"$regex": re.escape(title.strip()), "$options": "i"}
    if director and director.strip():
        query["director"] = {"$regex": re.escape(director.strip()), "$options": "i"}
    if year and year.strip():
        year_value = parse_int(year)
        if year_value is None:
            logger.info(f"Ignoring malformed year filter: {year!r}")
        else:
            query["year"] = year_value
    return query


def next_movie_id(collection: Collection) -> int:
    last = collection.find_one({}, {"id": 1}, sort=[("id", DESCENDING)])
    if last is None or not isinstance(last.get("id"), int):
        return 1
    return last["id"] + 1


@app.get("/",
         response_class=HTMLResponse,
         summary="HTML overview of all movies")
def index(collection: Collection = Depends(get_collection)):
    total = collection.count_documents({})
    movies = collection.find({}, PROJECTION).sort("id", ASCENDING)
    items = "".join(
        f"<li>{escape(str(m.get('title')))} ({escape(str(m.get('year')))}) - {escape(str(m.get('director')))}</li>"
        for m in movies
    )
    return f"""<!DOCTYPE html>
<html>
  <head><title>Movies</title></head>
  <body>
    <h1>Movies</h1>
    <p>{total} movie{'' if total == 1 else 's'} in the collection</p>
    <ul>{items}</ul>
  </body>
</html>
"""


@app.get("/movies",
         response_model=List[Movie],
         summary="Get a list of movies, optionally filtered")
def read_movies(
        title: Optional[str] = None,
        year: Optional[str] = None,
        director: Optional[str] = None,
        collection: Collection = Depends(get_collection)
):
    query = build_filter(title, year, director)
    movies = list(collection.find(query, PROJECTION).sort("id", ASCENDING))
    logger.info(f"A list of movies was requested, {len(movies)} entries were found")
    return movies


@app.post("/movies",
          response_model=Movie,
          status_code=status.HTTP_201_CREATED,
          summary="Add a new movie",
          response_description="The data of the created movie",
          responses={
              400: {"description": "Invalid movie data"}
          })
def create_movie(
        movie: MovieCreate,
        collection: Collection = Depends(get_collection)
):
    new_movie = Movie(id=next_movie_id(collection), **movie.model_dump())
    collection.insert_one(new_movie.model_dump())
    logger.info(f"A new movie has been added: ID {new_movie.id}, {new_movie.title}")
    return new_movie


@app.get("/movies/{movie_id}",
         response_model=Movie,
         summary="Get a movie by ID",
         responses={
             404: {"description": "The movie was not found"}
         })
def read_movie(movie_id: str, collection: Collection = Depends(get_collection)):
    movie_key = parse_movie_id(movie_id)
    movie = collection.find_one({"id": movie_key}, PROJECTION)
    if not movie:
        logger.warning(f"A non-existent movie ID was requested {movie_key}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=MOVIE_NOT_FOUND
        )
    return movie


@app.put("/movies/{movie_id}",
         response_model=Movie,
         summary="Update movie data",
         responses={
             400: {"description": "Invalid movie data"},
             404: {"description": "The movie was not found"}
         })
def update_movie(
        movie_id: str,
        movie_data: dict = Body(..., description="Any subset of title, director and year"),
        collection: Collection = Depends(get_collection)
):
    movie_key = parse_movie_id(movie_id)
    if not collection.find_one({"id": movie_key}, {"id": 1}):
        logger.warning(f"Attempt to update a non-existent movie ID {movie_key}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=MOVIE_NOT_FOUND
        )

    # Validated only once the movie is known to exist
    try:
        changes = MovieUpdate.model_validate(movie_data)
    except ValidationError as e:
        raise RequestValidationError(e.errors())
    update_data = changes.model_dump(exclude_unset=True, exclude_none=True)

    if update_data:
        movie = collection.find_one_and_update(
            {"id": movie_key},
            {"$set": update_data},
            projection=PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
    else:
        movie = collection.find_one({"id": movie_key}, PROJECTION)

    if not movie:
        logger.warning(f"Attempt to update a non-existent movie ID {movie_key}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=MOVIE_NOT_FOUND
        )

    logger.info(f"Updated movie ID {movie_key}: {', '.join(update_data) or 'no changes'}")
    return movie


@app.delete("/movies/{movie_id}",
            status_code=status.HTTP_204_NO_CONTENT,
            summary="Delete a movie",
            responses={
                404: {"description": "The movie was not found"}
            })
def delete_movie(movie_id: str, collection: Collection = Depends(get_collection)):
    movie_key = parse_movie_id(movie_id)
    result = collection.delete_one({"id": movie_key})
    if result.deleted_count == 0:
        logger.warning(f"Attempt to delete a non-existent movie ID {movie_key}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=MOVIE_NOT_FOUND
        )

    logger.info(f"Deleted movie ID {movie_key}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def run():
    uvicorn.run(app, host=HOST, port=PORT)


if __name__ == "__main__":
    run()

import logging
import sqlite3
from contextlib import asynccontextmanager
from threading import RLock
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, field_validator

import database
from book import Book, InsufficientStockError, InvalidQuantityError
from config import settings
from library import Library
from utils.validators import TextValidator

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


# --- Models ---
class BookModel(BaseModel):
    id: int
    title: str
    author: str
    copies_available: int

class BookCreateModel(BaseModel):
    title: str = Field(min_length=1, description="Display title")
    author: str = Field(min_length=1, description="Author name")
    quantity: int = Field(description="Copies to add; must be positive")

    @field_validator("title", "author")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not TextValidator.validate_title(value):
            raise ValueError("must not be blank")
        return value.strip()

class QuantityModel(BaseModel):
    quantity: int = Field(description="Number of copies; must be positive")

class StatsModel(BaseModel):
    total_titles: int
    total_records: int
    total_copies: int
    unique_authors: int


# --- Dependencies ---
def get_library(request: Request) -> Library:
    return request.app.state.library

def get_lock(request: Request) -> RLock:
    return request.app.state.lock

def _persist(request: Request) -> None:
    """Write the catalog snapshot when the app was created with a database file.

    If the write fails, the in-memory catalog is replaced by the last snapshot
    on disk so the unsaved change is discarded, and the client gets a 503.
    """
    db_file: Optional[str] = request.app.state.db_file
    if not db_file:
        return
    try:
        database.save_library(request.app.state.library, db_file)
    except sqlite3.Error:
        request.app.state.library = database.load_library(db_file)
        raise HTTPException(status_code=503, detail="Could not save the catalog; the change was discarded.")

def _find_or_404(library: Library, book_id: int) -> Book:
    book = library.get_book(book_id)
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found.")
    return book


def create_app(library: Optional[Library] = None, db_file: Optional[str] = None) -> FastAPI:
    """Build the API around a catalog.

    When `db_file` is given the catalog is loaded from it at startup (unless a
    catalog is passed in) and saved back after every successful change.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.library is None:
            app.state.library = database.load_library(db_file) if db_file else Library()
        logger.info(f"Serving {len(app.state.library)} books")
        yield

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.library = library
    app.state.db_file = db_file
    # FastAPI runs sync endpoints in a thread pool; every mutation takes this lock
    app.state.lock = RLock()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health(library: Library = Depends(get_library)) -> Dict[str, Any]:
        return {"status": "healthy", "total_books": len(library)}

    @app.get("/api/books", response_model=List[BookModel])
    def get_books(
        title: Optional[str] = Query(None, description="Exact title, case-insensitive"),
        library: Library = Depends(get_library),
    ):
        """List all books, or every book filed under one title."""
        books = library.find_book(title) if title is not None else library.list_books()
        return [BookModel(**b.to_dict()) for b in books]

    @app.get("/api/books/{book_id}", response_model=BookModel)
    def get_book(book_id: int, library: Library = Depends(get_library)):
        return BookModel(**_find_or_404(library, book_id).to_dict())

    @app.post("/api/books", response_model=BookModel, status_code=201)
    def create_book(
        payload: BookCreateModel,
        request: Request,
        response: Response,
        library: Library = Depends(get_library),
        lock: RLock = Depends(get_lock),
    ):
        """Add copies of a title/author pair; the first add creates the book."""
        with lock:
            if not library.add_book(payload.title, payload.author, payload.quantity):
                raise HTTPException(status_code=400, detail=str(InvalidQuantityError(payload.quantity)))
            book = next(b for b in library.find_book(payload.title) if b.matches_author(payload.author))
            _persist(request)
        response.headers["Location"] = f"/api/books/{book.id}"
        return BookModel(**book.to_dict())

    @app.post("/api/books/{book_id}/borrow", response_model=BookModel)
    def borrow_book(
        book_id: int,
        payload: QuantityModel,
        request: Request,
        library: Library = Depends(get_library),
        lock: RLock = Depends(get_lock),
    ):
        with lock:
            book = _find_or_404(library, book_id)
            try:
                book.borrow(payload.quantity)
            except InvalidQuantityError as e:
                raise HTTPException(status_code=400, detail=str(e))
            except InsufficientStockError as e:
                raise HTTPException(status_code=409, detail=str(e))
            _persist(request)
            return BookModel(**book.to_dict())

    @app.post("/api/books/{book_id}/return", response_model=BookModel)
    def return_book(
        book_id: int,
        payload: QuantityModel,
        request: Request,
        library: Library = Depends(get_library),
        lock: RLock = Depends(get_lock),
    ):
        with lock:
            book = _find_or_404(library, book_id)
            try:
                book.return_copies(payload.quantity)
            except InvalidQuantityError as e:
                raise HTTPException(status_code=400, detail=str(e))
            _persist(request)
            return BookModel(**book.to_dict())

    @app.get("/api/stats", response_model=StatsModel)
    def get_stats(library: Library = Depends(get_library)):
        return StatsModel(**library.get_statistics())

    return app


app = create_app(db_file=settings.data_file)

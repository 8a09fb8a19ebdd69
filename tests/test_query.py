import pytest

from book import Book
from query import filter_books, get_dashboard_stats, get_genres, parse_instant, query_books, sort_books


def make_book(id, title="Untitled", author="Someone", genre="Fiction", pages=100, status="to-read", **extra):
    data = {
        "id": id,
        "title": title,
        "author": author,
        "genre": genre,
        "pages": pages,
        "status": status,
        "dateAdded": extra.pop("dateAdded", "2024-01-01"),
        "coverColor": "c",
    }
    data.update(extra)
    return Book.from_dict(data)


@pytest.fixture
def shelf():
    return [
        make_book("a", "The Great Gatsby", "F. Scott Fitzgerald", "Classic Literature", 180, "read",
                  rating=4, dateAdded="2024-01-15", dateRead="2024-01-20",
                  dateReadTimestamp="2024-01-20T14:30:00.000Z"),
        make_book("b", "Dune", "Frank Herbert", "Science Fiction", 688, dateAdded="2024-01-10"),
        make_book("c", "to Kill a Mockingbird", "Harper Lee", "Classic Literature", 376, "read",
                  rating=5, dateAdded="2024-01-05", dateRead="2024-01-12"),
        make_book("d", "anathem", "Neal Stephenson", "Science Fiction", 937, dateAdded="2024-02-01"),
    ]


# ------------------------- filter ------------------------- #
def test_search_is_case_insensitive(shelf):
    result = filter_books(shelf, "dune")
    assert [b.id for b in result] == ["b"]


@pytest.mark.parametrize("term,expected", [
    ("HERBERT", ["b"]),
    ("classic", ["a", "c"]),
    ("an", ["b", "d"]),
])
def test_search_matches_title_author_or_genre(shelf, term, expected):
    assert sorted(b.id for b in filter_books(shelf, term)) == sorted(expected)


def test_genre_filter_is_exact(shelf):
    assert [b.id for b in filter_books(shelf, genre="Science Fiction")] == ["b", "d"]
    assert filter_books(shelf, genre="science fiction") == []


def test_search_and_genre_combine(shelf):
    assert [b.id for b in filter_books(shelf, "e", "Science Fiction")] == ["b", "d"]
    assert [b.id for b in filter_books(shelf, "dune", "Classic Literature")] == []


def test_no_filters_match_everything(shelf):
    assert filter_books(shelf) == shelf
    assert filter_books(shelf, "", "") == shelf


def test_filter_does_not_mutate(shelf):
    original = list(shelf)
    filter_books(shelf, "dune")
    assert shelf == original


# ------------------------- sort ------------------------- #
def test_title_sort_ignores_case(shelf):
    assert [b.id for b in sort_books(shelf, "title", "asc")] == ["d", "b", "a", "c"]


def test_title_sort_places_accented_letters_with_base_letter():
    books = [make_book("z", "zebra"), make_book("e", "Émile"), make_book("a", "apple")]
    assert [b.title for b in sort_books(books, "title", "asc")] == ["apple", "Émile", "zebra"]


def test_author_sort_handles_non_ascii_names():
    books = [
        make_book("1", author="Zola"),
        make_book("2", author="Ørsted"),
        make_book("3", author="Čapek"),
        make_book("4", author="Borges"),
    ]
    assert [b.author for b in sort_books(books, "author", "asc")] == ["Borges", "Čapek", "Ørsted", "Zola"]


def test_title_desc_is_reverse_of_asc(shelf):
    asc = sort_books(shelf, "title", "asc")
    desc = sort_books(asc, "title", "desc")
    assert desc == list(reversed(asc))


def test_sort_by_pages(shelf):
    assert [b.pages for b in sort_books(shelf, "pages", "asc")] == [180, 376, 688, 937]


def test_sort_by_date_added_desc_is_default(shelf):
    assert [b.id for b in sort_books(shelf)] == ["d", "a", "b", "c"]


def test_missing_rating_sorts_as_zero(shelf):
    assert [b.id for b in sort_books(shelf, "rating", "asc")] == ["b", "d", "a", "c"]


def test_missing_date_read_sorts_oldest(shelf):
    assert [b.id for b in sort_books(shelf, "dateRead", "desc")] == ["a", "c", "b", "d"]


def test_sort_is_stable_for_equal_keys():
    books = [make_book(str(i), pages=100) for i in range(5)]
    assert [b.id for b in sort_books(books, "pages", "asc")] == ["0", "1", "2", "3", "4"]
    assert [b.id for b in sort_books(books, "pages", "desc")] == ["0", "1", "2", "3", "4"]


def test_sort_rejects_unknown_key(shelf):
    with pytest.raises(ValueError):
        sort_books(shelf, "isbn")
    with pytest.raises(ValueError):
        sort_books(shelf, "title", "sideways")


def test_query_books_filters_then_sorts(shelf):
    assert [b.id for b in query_books(shelf, genre="Classic Literature", sort_by="rating", order="desc")] == ["c", "a"]


# ------------------------- genres ------------------------- #
def test_genres_are_distinct_and_sorted(shelf):
    assert get_genres(shelf) == ["Classic Literature", "Science Fiction"]
    assert get_genres([]) == []


# ------------------------- dashboard ------------------------- #
def test_dashboard_aggregates():
    books = [
        make_book("1", pages=180, status="read", rating=4),
        make_book("2", pages=688, status="to-read"),
        make_book("3", pages=376, status="read", rating=5),
    ]
    stats = get_dashboard_stats(books)

    assert stats["total"] == 3
    assert stats["read"] == 2
    assert stats["toRead"] == 1
    assert stats["totalPages"] == 1244
    assert stats["readPages"] == 556
    assert stats["averageRating"] == 4.5


def test_average_rating_skips_unrated_books():
    books = [
        make_book("1", status="read", rating=2),
        make_book("2", status="read"),
        make_book("3", status="read"),
    ]
    assert get_dashboard_stats(books)["averageRating"] == 2


def test_empty_dashboard():
    stats = get_dashboard_stats([])
    assert stats["total"] == 0
    assert stats["averageRating"] == 0
    assert stats["recentlyRead"] == []
    assert stats["upNext"] == []


def test_recently_read_prefers_timestamp_then_date():
    books = [
        make_book("old", status="read", dateRead="2024-01-01"),
        make_book("stamped", status="read", dateRead="2023-01-01", dateReadTimestamp="2024-03-01T08:00:00.000Z"),
        make_book("newest", status="read", dateRead="2024-05-01"),
        make_book("mid", status="read", dateReadTimestamp="2024-02-01T00:00:00.000Z"),
        make_book("undated", status="read"),
        make_book("todo", dateRead="2025-01-01"),
    ]
    assert [b.id for b in get_dashboard_stats(books)["recentlyRead"]] == ["newest", "stamped", "mid"]


def test_up_next_is_latest_added_to_read():
    books = [make_book(str(i), dateAdded=f"2024-01-0{i}") for i in range(1, 6)]
    books.append(make_book("read", status="read", dateAdded="2024-12-31"))
    assert [b.id for b in get_dashboard_stats(books)["upNext"]] == ["5", "4", "3"]


# ------------------------- parse_instant ------------------------- #
def test_parse_instant():
    assert parse_instant(None) == 0
    assert parse_instant("") == 0
    assert parse_instant("garbage") == 0
    assert parse_instant("1970-01-02") == 86400
    assert parse_instant("1970-01-01T00:01:00.000Z") == 60

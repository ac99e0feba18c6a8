from manga_reader.api.routes import analytics, chapters, manga, pages, users

ROUTERS = [users.router, manga.router, chapters.router, pages.router, analytics.router]

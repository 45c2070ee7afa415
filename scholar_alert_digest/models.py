from pydantic import BaseModel, Field


class Abstract(BaseModel):
    first_line: str = ""
    rest: str = ""


class Ref(BaseModel):
    """A message in which a paper was observed."""
    message_id: str
    source_label: str = ""


class Paper(BaseModel):
    """One cited work, as observed in one or (once merged) several emails."""
    title: str
    url: str
    author: str = ""
    abstract: Abstract = Field(default_factory=Abstract)
    source: str = ""
    refs: list[Ref] = Field(default_factory=list)
    freq: int = 1

    def to_dict(self):
        """JSON-ready mapping, author and refs are left out when empty."""
        exclude = set()
        if not self.author:
            exclude.add("author")
        if not self.refs:
            exclude.add("refs")
        return self.model_dump(mode="json", exclude=exclude)


class Stats(BaseModel):
    messages_processed: int = 0
    titles_extracted: int = 0  # before deduplication
    extraction_errors: int = 0


class Message(BaseModel):
    """An alert email, as handed over by the mail fetcher.

    body_html is None when no text/html part could be found.
    """
    id: str
    subject: str = ""
    body_html: bytes | None = None

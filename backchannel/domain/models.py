"""
Pydantic models for feedback packages and their comments.

This module defines the records persisted inside every store, including:
- The single Package record that names a feedback collection and its root URL
- Comment records keyed by their creation timestamp
- Resolution results handed back to consumers
- Request bodies accepted by the HTTP API

Field names use snake_case in Python and the camelCase aliases of the
persisted/wire format (rootURL, elementText, pageUrl, documentTitle).
Unknown keys are preserved so records written by newer clients round-trip.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------


class Package(BaseModel):
    """
    Metadata identifying a feedback collection.

    A store holds at most one Package. The package is active for every page
    whose URL starts with `root_url`.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = Field(
        default=None,
        description="Identifier, unique within its store. Generated when absent.",
    )
    name: str = Field(default="", description="Human-readable package name.")
    version: str = Field(default="", description="Package version string.")
    author: str = Field(default="", description="Person who created the package.")
    description: str = Field(default="", description="Free-form description.")
    root_url: Optional[str] = Field(
        default=None,
        alias="rootURL",
        description="URL prefix under which this package is active.",
    )

    def to_record(self) -> dict:
        """Serialize to the persisted (camelCase) form."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Comment(BaseModel):
    """One timestamped feedback entry attached to a page element."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    timestamp: int = Field(description="Creation time in ms; primary key within the store.")
    xpath: str = Field(default="", description="XPath of the element commented on.")
    element_text: str = Field(default="", alias="elementText")
    feedback: str = Field(default="", description="The comment text itself.")
    page_url: str = Field(default="", alias="pageUrl")
    document_title: str = Field(default="", alias="documentTitle")

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Resolution results
# ---------------------------------------------------------------------------


class StoreMatch(BaseModel):
    """A store whose package root URL prefixes a searched URL."""

    model_config = ConfigDict(populate_by_name=True)

    store_id: str = Field(alias="storeId")
    store_name: str = Field(alias="storeName")
    package: Package


class ActiveFeedbackPackage(BaseModel):
    """The package active for a URL, together with the id of its store."""

    model_config = ConfigDict(populate_by_name=True)

    store_id: str = Field(alias="storeId")
    package: Package


# ---------------------------------------------------------------------------
# Seeding / API payloads
# ---------------------------------------------------------------------------


class StoreDefinition(BaseModel):
    """
    Declarative description of a store, used to seed fixtures and demo data.
    """

    name: str = Field(description="Store title; sanitized into the store id.")
    package: Optional[Package] = None
    comments: List[Comment] = Field(default_factory=list)


class StoreCreateRequest(BaseModel):
    title: Optional[str] = Field(
        default=None,
        description="Store title. An id is generated when omitted.",
    )
    package: Optional[Package] = Field(
        default=None,
        description="Package written into the store if it is empty.",
    )


class StoreSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    store_id: str = Field(alias="storeId")
    store_name: str = Field(alias="storeName")

"""Read novel metadata and the chapter list from an extracted EPUB tree."""
import logging
import os
import posixpath
from typing import Dict, Optional
from urllib.parse import unquote

from bs4 import BeautifulSoup

from exceptions import ParseError
from schemas import ParsedChapter, ParsedNovel
from translations import get_string

logger = logging.getLogger(__name__)

CONTAINER_PATH = os.path.join("META-INF", "container.xml")
HTML_MEDIA_TYPES = {"application/xhtml+xml", "text/html"}
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"
ARTIST_ROLES = {"ill", "art"}


def _text(tag) -> Optional[str]:
    if tag is None:
        return None
    text = tag.get_text(strip=True)
    return text or None


def _strip_fragment(href: str) -> str:
    return href.split("#", 1)[0]


class EpubParser:
    """
    Parse an extracted EPUB directory into a ParsedNovel.

    Follows META-INF/container.xml to the OPF package, reads Dublin Core
    metadata, the manifest and spine, and labels chapters from the NCX or
    EPUB 3 navigation document when one is present.
    """

    def parse(self, extracted_dir: str) -> ParsedNovel:
        """
        Parse the package found under ``extracted_dir``.

        Args:
            extracted_dir: Root of the extracted archive

        Returns:
            ParsedNovel with chapters in spine order
        """
        try:
            opf_path = self._find_package(extracted_dir)
            package = self._load_xml(opf_path)
        except OSError as e:
            raise ParseError(get_string("parseFailed"), {"reason": str(e)}) from e

        if package.find("package") is None:
            raise ParseError(get_string("parseFailed"), {"reason": "missing <package> element"})

        opf_dir = os.path.dirname(opf_path)
        manifest = self._read_manifest(package)
        metadata = package.find("metadata")

        author, artist = self._read_creators(metadata)
        novel = ParsedNovel(
            name=_text(metadata.find("title")) if metadata is not None else None,
            author=author,
            artist=artist,
            summary=_text(metadata.find("description")) if metadata is not None else None,
            cover=self._find_cover(package, manifest, opf_dir),
        )

        labels = self._read_toc_labels(manifest, opf_dir)
        spine = package.find("spine")
        chapters = []
        for itemref in spine.find_all("itemref") if spine is not None else []:
            if itemref.get("linear") == "no":
                continue
            item = manifest.get(itemref.get("idref"))
            if item is None or item["media_type"] not in HTML_MEDIA_TYPES:
                continue
            path = posixpath.normpath(posixpath.join(opf_dir, item["href"]))
            chapters.append(ParsedChapter(name=labels.get(unquote(path)), path=path))

        novel.chapters = chapters
        logger.info(f"Parsed '{novel.name}' with {len(chapters)} chapters")
        return novel

    def _find_package(self, extracted_dir: str) -> str:
        container = self._load_xml(os.path.join(extracted_dir, CONTAINER_PATH))
        rootfile = container.find("rootfile")
        if rootfile is None or not rootfile.get("full-path"):
            raise ParseError(get_string("parseFailed"), {"reason": "container.xml has no rootfile"})
        return os.path.join(extracted_dir, unquote(rootfile["full-path"]))

    def _load_xml(self, path: str) -> BeautifulSoup:
        with open(path, "rb") as handle:
            return BeautifulSoup(handle.read(), "xml")

    def _read_manifest(self, package: BeautifulSoup) -> Dict[str, dict]:
        manifest = {}
        for item in package.find_all("item"):
            if not item.get("id") or not item.get("href"):
                continue
            manifest[item["id"]] = {
                "href": item["href"],
                "media_type": item.get("media-type", ""),
                "properties": set((item.get("properties") or "").split()),
            }
        return manifest

    def _read_creators(self, metadata):
        """Split creators into (author, artist) using OPF 2 and EPUB 3 roles."""
        if metadata is None:
            return None, None

        refined_roles = {}
        for meta in metadata.find_all("meta", attrs={"property": "role"}):
            refines = (meta.get("refines") or "").lstrip("#")
            if refines:
                refined_roles[refines] = meta.get_text(strip=True)

        author = None
        artist = None
        for creator in metadata.find_all(["creator", "contributor"]):
            name = _text(creator)
            if not name:
                continue
            role = creator.get("opf:role") or creator.get("role") or refined_roles.get(creator.get("id"))
            if role in ARTIST_ROLES:
                artist = artist or name
            elif creator.name == "creator":
                author = author or name
        return author, artist

    def _find_cover(self, package, manifest, opf_dir) -> Optional[str]:
        href = None
        for item in manifest.values():
            if "cover-image" in item["properties"]:
                href = item["href"]
                break

        if href is None:
            meta = package.find("meta", attrs={"name": "cover"})
            item = manifest.get(meta.get("content")) if meta is not None else None
            if item is not None:
                href = item["href"]

        if href is None:
            return None
        return os.path.normpath(os.path.join(opf_dir, unquote(href).lstrip("/")))

    def _read_toc_labels(self, manifest, opf_dir) -> Dict[str, str]:
        """Map decoded chapter paths to their table-of-contents labels."""
        labels: Dict[str, str] = {}

        def add(base_dir: str, href: str, label: Optional[str]):
            if not href or not label:
                return
            path = unquote(posixpath.normpath(posixpath.join(base_dir, _strip_fragment(href))))
            labels.setdefault(path, label)

        for item in manifest.values():
            toc_path = posixpath.join(opf_dir, unquote(item["href"]))
            toc_dir = posixpath.dirname(toc_path)
            try:
                if item["media_type"] == NCX_MEDIA_TYPE:
                    ncx = self._load_xml(toc_path)
                    for point in ncx.find_all("navPoint"):
                        content = point.find("content")
                        add(toc_dir, content.get("src") if content is not None else None, _text(point.find("text")))
                elif "nav" in item["properties"]:
                    with open(toc_path, "rb") as handle:
                        nav_doc = BeautifulSoup(handle.read(), "lxml")
                    for link in nav_doc.select("nav a[href]"):
                        add(toc_dir, link["href"], _text(link))
            except OSError as e:
                logger.warning(f"Could not read table of contents {toc_path}: {e}")

        return labels

# services/api/models/collection.py
from __future__ import annotations

import dataclasses
from typing import Callable, Iterable, Iterator, List, Tuple

from core.errors import OutOfRangeError
from .document import Document, Payload

Listener = Callable[["DocumentCollection"], None]


class DocumentCollection:
  """
  Ordered queue of documents waiting to be merged.

  Invariants:
    - doc_id is unique and never reused after removal
    - documents[i].position == i for every i
    - every structural mutation bumps `revision` and notifies subscribers

  The collection does not know about merge results. Whoever holds one
  subscribes and treats a mutation event as "previous result is stale".
  """

  def __init__(self) -> None:
    self._docs: List[Document] = []
    self._next_id = 1
    self._listeners: List[Listener] = []
    self.revision = 0

  # --------------------
  # Read access
  # --------------------
  def __len__(self) -> int:
    return len(self._docs)

  def __iter__(self) -> Iterator[Document]:
    return iter(self._docs)

  def __getitem__(self, index: int) -> Document:
    return self._docs[index]

  def snapshot(self) -> Tuple[Document, ...]:
    return tuple(self._docs)

  def total_size_bytes(self) -> int:
    return sum(d.size_bytes for d in self._docs)

  def subscribe(self, listener: Listener) -> None:
    self._listeners.append(listener)

  # --------------------
  # Mutations
  # --------------------
  def new_document(self, display_name: str, size_bytes: int, payload: Payload) -> Document:
    """Mint a document with a fresh id. It is not queued until append()."""
    doc_id = f"d-{self._next_id}"
    self._next_id += 1
    return Document(
      doc_id=doc_id,
      display_name=display_name,
      size_bytes=int(size_bytes),
      payload=payload,
    )

  def append(self, new_documents: Iterable[Document]) -> List[Document]:
    incoming = list(new_documents)
    if not incoming:
      return []

    seen = {d.doc_id for d in self._docs}
    for doc in incoming:
      if doc.doc_id in seen:
        raise ValueError(f"duplicate doc_id: {doc.doc_id}")
      seen.add(doc.doc_id)

    self._docs.extend(incoming)
    self._renumber()
    self._changed()
    return self._docs[-len(incoming):]

  def remove_at(self, index: int) -> Document:
    self._check_index(index)
    removed = self._docs.pop(index)
    self._renumber()
    self._changed()
    return removed

  def move_up(self, index: int) -> None:
    self._check_index(index)
    if index == 0:
      return
    self._swap(index, index - 1)

  def move_down(self, index: int) -> None:
    self._check_index(index)
    if index == len(self._docs) - 1:
      return
    self._swap(index, index + 1)

  def reset(self) -> None:
    self._docs.clear()
    self._changed()

  # --------------------
  # Internals
  # --------------------
  def _check_index(self, index: int) -> None:
    if not (0 <= index < len(self._docs)):
      raise OutOfRangeError(index, len(self._docs))

  def _swap(self, a: int, b: int) -> None:
    self._docs[a], self._docs[b] = self._docs[b], self._docs[a]
    self._renumber()
    self._changed()

  def _renumber(self) -> None:
    # Documents are frozen; replace any whose position drifted.
    for i, doc in enumerate(self._docs):
      if doc.position != i:
        self._docs[i] = dataclasses.replace(doc, position=i)

  def _changed(self) -> None:
    self.revision += 1
    for listener in list(self._listeners):
      listener(self)


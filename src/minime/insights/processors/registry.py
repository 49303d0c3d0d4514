"""Closed processor registry resolved at startup."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from minime.errors import DuplicateProcessorError, NoProcessorError

from .base import BaseProcessor

logger = logging.getLogger(__name__)


class ProcessorRegistry:
    """Maps memory types (and processor names) to processors.

    Every memory type is claimed by at most one processor, so routing is a
    plain dictionary lookup. An optional fallback handles types nobody
    claimed.
    """

    def __init__(
        self,
        processors: Iterable[BaseProcessor] = (),
        *,
        fallback: Optional[BaseProcessor] = None,
    ) -> None:
        self._by_type: Dict[str, BaseProcessor] = {}
        self._by_name: Dict[str, BaseProcessor] = {}
        self._fallback: Optional[BaseProcessor] = None
        for processor in processors:
            self.register(processor)
        if fallback is not None:
            self.set_fallback(fallback)

    def register(
        self,
        processor: BaseProcessor,
        memory_types: Optional[Iterable[str]] = None,
    ) -> None:
        """Register a processor under its memory types.

        Args:
            processor: Processor instance
            memory_types: Keys to claim, defaults to ``processor.memory_types``

        Raises:
            DuplicateProcessorError: If a key is already claimed
        """
        keys = list(memory_types if memory_types is not None else processor.memory_types)
        existing = self._by_name.get(processor.name)
        if existing is not None and existing is not processor:
            raise DuplicateProcessorError(
                f"Processor name '{processor.name}' already registered",
                details={"processor": processor.name},
            )
        for key in keys:
            if key in self._by_type:
                raise DuplicateProcessorError(
                    f"Memory type '{key}' already handled by '{self._by_type[key].name}'",
                    details={"memory_type": key, "processor": processor.name},
                )

        self._by_name[processor.name] = processor
        for key in keys:
            self._by_type[key] = processor
        logger.debug(
            "Registered processor",
            extra={"processor": processor.name, "memory_types": keys},
        )

    def set_fallback(self, processor: BaseProcessor) -> None:
        self._fallback = processor
        self._by_name.setdefault(processor.name, processor)

    def resolve(self, memory_type: str, strategy: Optional[str] = None) -> BaseProcessor:
        """Pick the processor for a memory type.

        An explicit ``strategy`` names a processor directly and wins over the
        type mapping.

        Raises:
            NoProcessorError: If nothing matches and no fallback is set
        """
        if strategy:
            processor = self._by_name.get(strategy)
            if processor is None:
                raise NoProcessorError(
                    f"No processor named '{strategy}'",
                    details={"strategy": strategy, "memory_type": memory_type},
                )
            return processor

        processor = self._by_type.get(memory_type)
        if processor is not None:
            return processor
        if self._fallback is not None:
            return self._fallback
        raise NoProcessorError(
            f"No processor registered for memory type '{memory_type}'",
            details={"memory_type": memory_type},
        )

    def memory_types(self) -> Dict[str, str]:
        return {key: proc.name for key, proc in sorted(self._by_type.items())}

    def processors(self) -> List[BaseProcessor]:
        return list(self._by_name.values())

    def __contains__(self, memory_type: str) -> bool:
        return memory_type in self._by_type

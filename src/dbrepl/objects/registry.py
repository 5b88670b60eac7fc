"""Object kind handler registry."""

from typing import Dict, List, Optional, Type

from dbrepl.config.schema import ObjectKind
from dbrepl.objects.base import KindHandler


class KindRegistry:
    """
    Registry for object kind handlers.

    This is the single dispatch table from ObjectKind to the knowledge
    about that kind; the work item builder and every execution strategy
    look kinds up here instead of switching on them.
    """

    _handlers: Dict[ObjectKind, Type[KindHandler]] = {}
    _instances: Dict[ObjectKind, KindHandler] = {}

    @classmethod
    def register(cls, kind: ObjectKind):
        """
        Decorator to register a kind handler.

        Args:
            kind: Object kind to register handler for

        Returns:
            Decorator function

        Example:
            @KindRegistry.register(ObjectKind.VIEW)
            class ViewHandler(ObjectHandler):
                ...
        """

        def decorator(handler_class: Type[KindHandler]):
            if not hasattr(handler_class, "kind"):
                handler_class.kind = kind

            cls._handlers[kind] = handler_class
            cls._instances.pop(kind, None)
            return handler_class

        return decorator

    @classmethod
    def get_handler(cls, kind: ObjectKind) -> KindHandler:
        """
        Get the handler for a kind.

        Args:
            kind: Object kind

        Returns:
            Handler instance

        Raises:
            ValueError: If no handler registered for kind
        """
        if kind not in cls._handlers:
            raise ValueError(f"No handler registered for object kind: {kind}")

        if kind not in cls._instances:
            cls._instances[kind] = cls._handlers[kind]()
        return cls._instances[kind]

    @classmethod
    def all_handlers(cls) -> List[KindHandler]:
        """Get every registered handler in folder (dependency) order."""
        handlers = [cls.get_handler(kind) for kind in cls._handlers]
        return sorted(handlers, key=lambda h: h.folder)

    @classmethod
    def kind_for_folder(cls, folder: str) -> Optional[ObjectKind]:
        """
        Find the kind whose output folder is ``folder``.

        Args:
            folder: Folder relative to the export root, '/'-separated

        Returns:
            ObjectKind or None for unknown folders
        """
        for handler in cls.all_handlers():
            if handler.folder == folder:
                return handler.kind
        return None

    @classmethod
    def is_registered(cls, kind: ObjectKind) -> bool:
        """Check if a kind is registered."""
        return kind in cls._handlers

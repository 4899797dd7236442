"""
Service Registry with lazy loading
Factories are registered at app creation and only run when a service is first
requested, resolving their dependencies by name.
"""
from typing import Dict, Any, Callable, Optional, List
from enum import Enum
import threading
import logging

logger = logging.getLogger(__name__)


class ServiceLifecycle(Enum):
    """How long a created service instance lives"""
    SINGLETON = "singleton"  # One instance per registry (per app)
    TRANSIENT = "transient"  # New instance on every get()


class ServiceDescriptor:
    """Describes a service registration"""

    def __init__(
        self,
        name: str,
        factory: Optional[Callable] = None,
        instance: Optional[Any] = None,
        lifecycle: ServiceLifecycle = ServiceLifecycle.SINGLETON,
        dependencies: Optional[List[str]] = None
    ):
        self.name = name
        self.factory = factory
        self.instance = instance
        self.lifecycle = lifecycle
        self.dependencies = dependencies or []
        self.lock = threading.Lock()


class ServiceRegistry:
    """
    Registry of named services built by factories.

    - Dependencies are resolved by name and passed to the factory as keyword
      arguments.
    - Singleton creation is guarded by a per-service lock.
    - Cycles are reported as RuntimeError instead of recursing forever.
    """

    def __init__(self):
        self._descriptors: Dict[str, ServiceDescriptor] = {}
        self._thread_local = threading.local()
        self._lock = threading.Lock()

    def register(
        self,
        name: str,
        service: Any = None,
        factory: Callable = None,
        lifecycle: ServiceLifecycle = ServiceLifecycle.SINGLETON,
        dependencies: Optional[List[str]] = None
    ) -> None:
        """
        Register a ready instance or a factory under a name.

        Registering an existing name replaces it, which is how tests swap in
        mocks.
        """
        if service is None and factory is None:
            raise ValueError(f"Either service instance or factory must be provided for '{name}'")

        descriptor = ServiceDescriptor(
            name=name,
            factory=factory,
            instance=service,
            lifecycle=lifecycle,
            dependencies=dependencies
        )

        with self._lock:
            self._descriptors[name] = descriptor

    def register_factory(
        self,
        name: str,
        factory: Callable,
        lifecycle: ServiceLifecycle = ServiceLifecycle.SINGLETON,
        dependencies: Optional[List[str]] = None
    ) -> None:
        self.register(
            name=name,
            factory=factory,
            lifecycle=lifecycle,
            dependencies=dependencies
        )

    def get(self, name: str) -> Any:
        """
        Get a service by name, creating it and its dependencies on first use.

        Raises:
            ValueError: If service is not registered
            RuntimeError: If circular dependency detected
        """
        descriptor = self._descriptors.get(name)
        if descriptor is None:
            raise ValueError(f"Service '{name}' is not registered")

        stack = self._initialization_stack()
        if name in stack:
            cycle = " -> ".join(stack + [name])
            raise RuntimeError(f"Circular dependency detected: {cycle}")

        if descriptor.lifecycle == ServiceLifecycle.TRANSIENT:
            return self._create_instance(descriptor)
        return self._get_singleton(descriptor)

    def _initialization_stack(self) -> List[str]:
        if not hasattr(self._thread_local, 'initialization_stack'):
            self._thread_local.initialization_stack = []
        return self._thread_local.initialization_stack

    def _get_singleton(self, descriptor: ServiceDescriptor) -> Any:
        if descriptor.instance is not None:
            return descriptor.instance

        with descriptor.lock:
            if descriptor.instance is None:
                descriptor.instance = self._create_instance(descriptor)
            return descriptor.instance

    def _create_instance(self, descriptor: ServiceDescriptor) -> Any:
        if descriptor.factory is None:
            raise ValueError(f"No factory registered for '{descriptor.name}'")

        stack = self._initialization_stack()
        stack.append(descriptor.name)
        try:
            deps = {dep: self.get(dep) for dep in descriptor.dependencies}
            instance = descriptor.factory(**deps)
            logger.debug(f"Created service instance: {descriptor.name}")
            return instance
        finally:
            stack.pop()

    def validate_dependencies(self) -> List[str]:
        """
        Check that every declared dependency is registered.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        for name, descriptor in self._descriptors.items():
            for dep in descriptor.dependencies:
                if dep not in self._descriptors:
                    errors.append(f"Service '{name}' depends on unregistered service '{dep}'")
        return errors

    def get_initialization_order(self) -> List[str]:
        """
        Topologically sort services so dependencies come first.

        Raises:
            RuntimeError: If circular dependency exists
        """
        graph = {name: list(d.dependencies) for name, d in self._descriptors.items()}
        visited = set()
        order = []

        def visit(node: str, path: List[str]):
            if node in path:
                cycle = " -> ".join(path + [node])
                raise RuntimeError(f"Circular dependency detected: {cycle}")
            if node in visited:
                return
            for dep in graph.get(node, []):
                visit(dep, path + [node])
            visited.add(node)
            order.append(node)

        for name in graph:
            visit(name, [])

        return order


def create_registry() -> ServiceRegistry:
    return ServiceRegistry()

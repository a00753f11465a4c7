"""
工厂函数：根据 settings.ADMINISTRATION_STORE 返回对应的 Store 实例。

新增存储实现只需：
  1. 新建 XxxStore(BaseAdministrationStore) 类
  2. 在此处 _build_registry 加一行
  不需要修改 services.py 或任何业务代码。
"""

from django.conf import settings

from .base import BaseAdministrationStore


def _build_registry() -> dict[str, type[BaseAdministrationStore]]:
    # 延迟导入，避免在 Django 启动前触发 ORM import
    from .django_store import DjangoAdministrationStore
    from .memory import InMemoryAdministrationStore

    return {
        "django": DjangoAdministrationStore,
        "memory": InMemoryAdministrationStore,
    }


def get_administration_store() -> BaseAdministrationStore:
    """
    从 settings.ADMINISTRATION_STORE 读取存储实现，返回实例。

    Raises:
        ValueError: ADMINISTRATION_STORE 未知
    """
    backend = getattr(settings, "ADMINISTRATION_STORE", "django")
    registry = _build_registry()
    store_cls = registry.get(backend)

    if store_cls is None:
        raise ValueError(
            f"Unknown ADMINISTRATION_STORE: {backend!r}. "
            f"Known stores: {list(registry.keys())}"
        )

    return store_cls()

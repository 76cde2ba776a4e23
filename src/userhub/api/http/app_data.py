from dataclasses import dataclass

from src.userhub.core.services.user import UserService
from src.userhub.core.storage import StoreHandle


@dataclass
class ApplicationDependencies:
    store_handle: StoreHandle
    user_service: UserService

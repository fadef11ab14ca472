from helmapp.utils.helpers import truncate_name

#: Helm refuses release names longer than this
MAX_RELEASE_NAME_LENGTH = 53


class HelmAppResources:
    """Encapsulates the naming scheme used for the objects the operator manages
    on behalf of a HelmApp."""

    @classmethod
    def key(self, namespace: str, name: str) -> str:
        """Returns the work queue key of a HelmApp."""
        return f"{namespace}/{name}"

    @classmethod
    def split_key(self, key: str):
        """Returns (namespace, name) of a work queue key."""
        namespace, _, name = key.partition("/")
        return namespace, name

    @classmethod
    def release_name(self, name: str) -> str:
        """Returns the Helm release name of a HelmApp of the given name.

        Releases live in the HelmApp namespace, so the name alone is unique.
        """
        return truncate_name(name, MAX_RELEASE_NAME_LENGTH)

import kopf
from logging import Logger
from helmapp.resources import HelmApp
from helmapp.types.settings import WATCH_LABEL_SELECTOR
from helmapp.utils.helpers import label_selector_to_dict

# Only HelmApps carrying these labels are reconciled; None watches all of them.
WATCH_LABELS = label_selector_to_dict(WATCH_LABEL_SELECTOR) or None


@kopf.on.event(
    HelmApp.GROUP_NAME,
    HelmApp.GROUP_VERSION,
    HelmApp.PLURAL_NAME,
    labels=WATCH_LABELS,
)
async def on_helmapp_event(
    type: str,
    name: str,
    namespace: str,
    memo: kopf.Memo,
    logger: Logger,
    **kwargs,
):
    """Queue every HelmApp event; reconciliation happens in the workers.

    The initial listing (type None), additions, modifications and deletions
    all map to the same key, so bursts collapse into one reconciliation.
    """
    controller = memo.get("controller")
    if controller is None:
        logger.warning(f"HelmApp {namespace}/{name} event {type} before the controller started")
        return
    logger.debug(f"HelmApp {namespace}/{name} event {type}, requesting reconciliation")
    controller.enqueue(namespace, name)

from nodriver import Tab


class Addon:
    """base class for a per-page addon managed by `ObserverLifecycleManager`

    `register()` is called once for every page that shows up,
    `unregister()` when it closes or the process shuts down.

    addons that run timers must stop them in `stop_timers()`; it is
    called before any page is torn down during shutdown.
    """

    name: str = "Addon"
    description: str = ""

    def __repr__(self):
        return f"<{type(self).__name__} {self.name}>"

    async def register(self, tab: Tab):
        """hook for attaching to a page

        :param tab: the page being registered.
        """
        pass

    async def unregister(self, tab: Tab):
        """hook for detaching from a page. may be called after the page closed.

        :param tab: the page being unregistered.
        """
        pass

    def stop_timers(self):
        """hook for stopping background timers/pollers"""
        pass


__all__ = [
    "Addon",
]

from dormmate.realtime.feed import REALTIME_TABLES, ChangeEvent, ChangeFeed, RowFilter, Subscription, change_feed

__all__ = ['REALTIME_TABLES', 'ChangeEvent', 'ChangeFeed', 'RowFilter', 'Subscription', 'change_feed']

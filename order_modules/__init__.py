"""
Order Modules -- the Order Lifecycle Engine.

Each module owns one order kind and its state machine, and turns its
transitions into stock, debt and cash ledger writes through the kernel:

- purchasing: purchase orders, goods receipt, supplier payments (payables)
- sales: sale orders, stock issue, customer payments (receivables)
- returns: return orders against completed sales (restock, refunds)

Every public service method is one atomic unit of work.
"""

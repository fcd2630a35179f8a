"""AuctionHub: REST backend for a student auction marketplace."""

"""DDL and data for the index_demo fixture database.

Each table is shaped to trip one audit rule: `orders` carries a covered index
and a badly ordered composite index, `order_items` has an unindexed
`product_id`, and `customers` is clean.
"""

INDEX_DEMO_DATASET_SQL = """
CREATE DATABASE index_demo;

USE index_demo;

CREATE TABLE customers (
    id BIGINT NOT NULL AUTO_INCREMENT,
    email VARCHAR(255) NOT NULL,
    country CHAR(2) NOT NULL,
    PRIMARY KEY (id),
    UNIQUE KEY uq_customers_email (email)
);

CREATE TABLE orders (
    id BIGINT NOT NULL AUTO_INCREMENT,
    customer_id BIGINT NOT NULL,
    status VARCHAR(16) NOT NULL,
    placed_at DATETIME NOT NULL,
    PRIMARY KEY (id),
    KEY idx_orders_customer (customer_id),
    KEY idx_orders_customer_status (customer_id, status),
    KEY idx_orders_status_placed (status, placed_at)
);

CREATE TABLE order_items (
    id BIGINT NOT NULL AUTO_INCREMENT,
    order_id BIGINT NOT NULL,
    product_id BIGINT NOT NULL,
    quantity INT NOT NULL,
    PRIMARY KEY (id),
    KEY idx_order_items_order (order_id)
);

INSERT INTO customers (email, country) VALUES
    ('ana@example.com', 'PT'),
    ('ben@example.com', 'GB'),
    ('chen@example.com', 'CN'),
    ('dora@example.com', 'DE');

INSERT INTO orders (customer_id, status, placed_at) VALUES
    (1, 'open', '2024-01-01 10:00:00'),
    (1, 'paid', '2024-01-02 11:00:00'),
    (2, 'open', '2024-01-03 12:00:00'),
    (2, 'paid', '2024-01-04 13:00:00'),
    (3, 'open', '2024-01-05 14:00:00'),
    (3, 'paid', '2024-01-06 15:00:00'),
    (4, 'open', '2024-01-07 16:00:00'),
    (4, 'shipped', '2024-01-08 17:00:00');

INSERT INTO order_items (order_id, product_id, quantity) VALUES
    (1, 10, 1),
    (1, 11, 2),
    (2, 10, 1),
    (3, 12, 5),
    (4, 13, 1),
    (5, 10, 3);

ANALYZE TABLE customers, orders, order_items;
"""

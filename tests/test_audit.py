import unittest
from mysql_index_audit import (
    CardinalityOrderDetector,
    Column,
    Database,
    ForeignKeyDetector,
    Index,
    IndexAnalyzer,
    OverwrapDetector,
    Schema,
    SchemaContractError,
    Table,
    cardinality_deltas,
    looks_like_foreign_key,
    sort_indexes_by_width,
)


def make_index(name, columns, cardinality=None, table="orders", unique=False):
    return Index(
        db_name="shop",
        table_name=table,
        name=name,
        is_unique=unique,
        columns=tuple(columns),
        cardinality=None if cardinality is None else tuple(cardinality),
    )


def make_column(name, type_="bigint", nullable=False, table="orders"):
    return Column(db_name="shop", table_name=table, name=name, type=type_, nullable=nullable)


class TestOverwrapDetector(unittest.TestCase):
    def setUp(self):
        self.table = Table(
            db_name="shop",
            name="orders",
            columns=[make_column("id"), make_column("customer_id"), make_column("status", "varchar(16)")],
            indexes=[
                make_index("PRIMARY", ["id"], unique=True),
                make_index("idx_a", ["customer_id"]),
                make_index("idx_b", ["customer_id", "status"]),
            ],
        )

    def test_narrow_index_is_covered_by_wider_one(self):
        groups = OverwrapDetector(self.table).detect()
        redundant = [g for g in groups if g.is_redundant]

        self.assertEqual(len(redundant), 1)
        self.assertEqual(redundant[0].anchor.name, "idx_b")
        self.assertEqual([i.name for i in redundant[0].covered], ["idx_a"])

    def test_primary_key_is_never_covered(self):
        self.table.indexes.append(make_index("idx_id_status", ["id", "status"]))
        groups = OverwrapDetector(self.table).detect()

        covered = [i.name for g in groups for i in g.covered]
        anchors = [g.anchor.name for g in groups]
        self.assertNotIn("PRIMARY", covered)
        self.assertNotIn("PRIMARY", anchors)

    def test_membership_ignores_column_order(self):
        table = Table(
            db_name="shop",
            name="orders",
            indexes=[
                make_index("idx_status_customer", ["status", "customer_id"]),
                make_index("idx_customer", ["customer_id"]),
            ],
        )
        groups = OverwrapDetector(table).detect()
        self.assertEqual([i.name for i in groups[0].covered], ["idx_customer"])

    def test_partial_overlap_is_not_covered(self):
        table = Table(
            db_name="shop",
            name="orders",
            indexes=[
                make_index("idx_ab", ["a", "b"]),
                make_index("idx_bc", ["b", "c"]),
            ],
        )
        groups = OverwrapDetector(table).detect()
        self.assertEqual(len(groups), 2)
        self.assertFalse(any(g.is_redundant for g in groups))

    def test_equal_width_ties_resolve_by_name(self):
        first = make_index("idx_y", ["b", "a"])
        second = make_index("idx_x", ["a", "b"])
        for indexes in ([first, second], [second, first]):
            table = Table(db_name="shop", name="orders", indexes=list(indexes))
            groups = OverwrapDetector(table).detect()
            self.assertEqual(groups[0].anchor.name, "idx_x")
            self.assertEqual([i.name for i in groups[0].covered], ["idx_y"])

    def test_covered_columns_are_subset_of_anchor(self):
        table = Table(
            db_name="shop",
            name="orders",
            indexes=[
                make_index("idx_abc", ["a", "b", "c"]),
                make_index("idx_de", ["d", "e"]),
                make_index("idx_ca", ["c", "a"]),
                make_index("idx_e", ["e"]),
                make_index("idx_f", ["f"]),
            ],
        )
        for group in OverwrapDetector(table).detect():
            for index in group.covered:
                self.assertTrue(set(index.columns) <= set(group.anchor.columns))

    def test_detection_is_repeatable_and_leaves_table_untouched(self):
        original = list(self.table.indexes)

        def pairs():
            return {
                (i.name, g.anchor.name)
                for g in OverwrapDetector(self.table).detect()
                for i in g.covered
            }

        self.assertEqual(pairs(), pairs())
        self.assertEqual(self.table.indexes, original)

    def test_single_index_table_has_no_groups_with_members(self):
        table = Table(db_name="shop", name="orders", indexes=[make_index("PRIMARY", ["id"])])
        self.assertEqual(OverwrapDetector(table).detect(), [])


class TestForeignKeyDetector(unittest.TestCase):
    def test_naming_predicate_is_plain_substring(self):
        self.assertTrue(looks_like_foreign_key("customer_id"))
        self.assertTrue(looks_like_foreign_key("legacy_id_card"))
        self.assertFalse(looks_like_foreign_key("id_card"))
        self.assertTrue(looks_like_foreign_key("old_identifier"))
        self.assertFalse(looks_like_foreign_key("id"))
        self.assertFalse(looks_like_foreign_key("customerid"))

    def test_unindexed_foreign_key_is_reported(self):
        table = Table(
            db_name="shop",
            name="orders",
            columns=[make_column("id"), make_column("customer_id"), make_column("status")],
            indexes=[make_index("PRIMARY", ["id"])],
        )
        coverage = ForeignKeyDetector(table).detect()

        self.assertEqual([str(c) for c in coverage.unindexed_columns], ["shop.orders.customer_id"])
        self.assertEqual(coverage.foreign_indexes, [])

    def test_indexed_foreign_key_anywhere_in_key_is_covered(self):
        table = Table(
            db_name="shop",
            name="orders",
            columns=[make_column("id"), make_column("customer_id"), make_column("store_id")],
            indexes=[
                make_index("PRIMARY", ["id"]),
                make_index("idx_status_customer", ["status", "customer_id"]),
            ],
        )
        coverage = ForeignKeyDetector(table).detect()

        self.assertEqual([c.name for c in coverage.unindexed_columns], ["store_id"])
        self.assertEqual([i.name for i in coverage.foreign_indexes], ["idx_status_customer"])


class TestCardinalityOrderDetector(unittest.TestCase):
    def detect(self, *indexes):
        table = Table(db_name="shop", name="orders", indexes=list(indexes))
        return [i.name for i in CardinalityOrderDetector(table).detect()]

    def test_deltas_clamp_shrinking_statistics(self):
        self.assertEqual(cardinality_deltas([100, 150, 140]), [100, 50, 0])
        self.assertEqual(cardinality_deltas([7]), [7])
        self.assertEqual(cardinality_deltas([]), [])

    def test_decreasing_contributions_pass(self):
        self.assertEqual(self.detect(make_index("idx_ok", ["a", "b", "c"], [1000, 1500, 1600])), [])

    def test_equal_contributions_pass(self):
        self.assertEqual(self.detect(make_index("idx_flat", ["a", "b", "c"], [10, 20, 30])), [])

    def test_increasing_step_is_flagged_once(self):
        index = make_index("idx_bad", ["a", "b", "c", "d"], [10, 500, 505, 5000])
        self.assertEqual(self.detect(index), ["idx_bad"])

    def test_zero_step_then_growth_is_flagged(self):
        self.assertEqual(self.detect(make_index("idx_zero", ["a", "b", "c"], [100, 100, 300])), ["idx_zero"])

    def test_shrinking_cumulative_values_do_not_flag(self):
        self.assertEqual(self.detect(make_index("idx_c", ["a", "b", "c"], [100, 150, 140])), [])

    def test_unusable_statistics_are_skipped(self):
        self.assertEqual(
            self.detect(
                make_index("idx_single", ["a"], [10]),
                make_index("idx_missing", ["a", "b"]),
                make_index("idx_short", ["a", "b", "c"], [10, 500]),
            ),
            [],
        )

    def test_incomplete_lists_only_mismatched_statistics(self):
        table = Table(
            db_name="shop",
            name="orders",
            indexes=[
                make_index("idx_short", ["a", "b", "c"], [10, 500]),
                make_index("idx_missing", ["a", "b"]),
                make_index("idx_ok", ["a", "b"], [10, 11]),
            ],
        )
        self.assertEqual([i.name for i in CardinalityOrderDetector(table).incomplete()], ["idx_short"])


class TestSchemaModel(unittest.TestCase):
    def test_index_without_columns_is_rejected(self):
        with self.assertRaises(SchemaContractError):
            make_index("idx_empty", [])

    def test_qualified_names(self):
        self.assertEqual(str(make_index("idx_a", ["a"])), "shop.orders.idx_a")
        self.assertEqual(str(make_column("customer_id")), "shop.orders.customer_id")
        self.assertEqual(str(Table(db_name="shop", name="orders")), "shop.orders")

    def test_sort_by_width_keeps_input_list(self):
        indexes = [make_index("b", ["x"]), make_index("a", ["x"]), make_index("c", ["x", "y"])]
        self.assertEqual([i.name for i in sort_indexes_by_width(indexes)], ["c", "a", "b"])
        self.assertEqual([i.name for i in indexes], ["b", "a", "c"])

    def test_duplicate_index_names_fail_validation(self):
        table = Table(
            db_name="shop",
            name="orders",
            indexes=[make_index("idx_a", ["a"]), make_index("idx_a", ["b"])],
        )
        schema = Schema(databases=[Database(name="shop", tables=[table])])
        with self.assertRaises(SchemaContractError):
            IndexAnalyzer(schema).analyze()

    def test_duplicate_column_names_fail_validation(self):
        table = Table(db_name="shop", name="orders", columns=[make_column("a"), make_column("a")])
        with self.assertRaises(SchemaContractError):
            Schema(databases=[Database(name="shop", tables=[table])]).validate()

    def test_primary_index_lookup(self):
        table = Table(
            db_name="shop",
            name="orders",
            indexes=[make_index("idx_a", ["a"]), make_index("PRIMARY", ["id"])],
        )
        self.assertEqual(table.primary_index.name, "PRIMARY")
        self.assertIsNone(Table(db_name="shop", name="empty").primary_index)


if __name__ == "__main__":
    unittest.main()
